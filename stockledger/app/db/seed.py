from __future__ import annotations

from decimal import Decimal

from stockledger.app.core.logging import configure_logging
from stockledger.app.db.base import Base
from stockledger.app.db.session import SessionLocal, engine
from stockledger.app.schemas.product import ProductCreate
from stockledger.services.errors import DuplicateSku
from stockledger.services.inventory import StockLedger
from stockledger.services.persistence import StockStore

DEMO_PRODUCTS = [
    ProductCreate(sku="RICE-25KG", name="Riz 25kg", category="dry", unit_price=Decimal("42.50"), initial_stock=300, low_stock_threshold=50),
    ProductCreate(sku="FLOUR-10KG", name="Farine 10kg", category="dry", unit_price=Decimal("18.90"), initial_stock=100, low_stock_threshold=40),
    ProductCreate(sku="OIL-5L", name="Huile 5L", category="liquid", unit_price=Decimal("12.00"), initial_stock=8, low_stock_threshold=10),
]


def run_seed():
    # S'assure que le schéma existe
    Base.metadata.create_all(bind=engine)

    ledger = StockLedger(StockStore(SessionLocal))
    created = 0
    for payload in DEMO_PRODUCTS:
        try:
            ledger.create_product(payload)
            created += 1
        except DuplicateSku:
            # déjà seedé : on ne touche pas au stock existant
            continue

    print(f"SEED OK: {created} product(s) created, {len(ledger.get_low_stock_products())} low on stock")


if __name__ == "__main__":
    configure_logging()
    run_seed()
