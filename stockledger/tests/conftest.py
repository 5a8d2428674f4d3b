from decimal import Decimal
import itertools

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from stockledger.app.db.base import Base
from stockledger.app.schemas.product import ProductCreate
from stockledger.services.inventory import StockLedger
from stockledger.services.persistence import StockStore


class RecordingNotifier:
    def __init__(self):
        self.calls = []

    def notify_low_stock(self, product):
        self.calls.append(product)


class FailingNotifier:
    def __init__(self):
        self.attempts = 0

    def notify_low_stock(self, product):
        self.attempts += 1
        raise ConnectionError("SMTP relay unreachable")


@pytest.fixture(scope="function")
def engine(tmp_path):
    """
    Base SQLite isolée par test.

    Fichier (et non :memory:) : les tests de concurrence ouvrent
    une connexion par thread.
    """
    eng = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture
def store(session_factory):
    return StockStore(session_factory)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def ledger(store, notifier):
    return StockLedger(store, notifier)


@pytest.fixture
def make_product(ledger):
    """Crée un produit ; SKU unique par appel sauf s'il est fourni."""
    counter = itertools.count(1)

    def _make(initial_stock=0, low_stock_threshold=5, **overrides):
        n = next(counter)
        fields = {
            "sku": f"TEST-SKU-{n}",
            "name": f"TEST-PROD-{n}",
            "unit_price": Decimal("10.00"),
            "initial_stock": initial_stock,
            "low_stock_threshold": low_stock_threshold,
        }
        fields.update(overrides)
        return ledger.create_product(ProductCreate(**fields))

    return _make


@pytest.fixture
def failing_notifier():
    return FailingNotifier()
