from concurrent.futures import ThreadPoolExecutor
import random
import threading
import uuid

import pytest

from stockledger.app.db.models.core_types import MovementType
from stockledger.app.schemas.product import ProductCreate
from stockledger.services.errors import InsufficientStock, ProductNotFound
from stockledger.services.inventory import StockLedger
from stockledger.services.locks import ProductLocks
from stockledger.services.persistence import StockStore


def test_concurrent_stock_in_loses_no_update(ledger, make_product):
    """
    GIVEN P à 0
    WHEN  100 STOCK_IN de 1 en parallèle
    THEN  P == 100 et exactement 100 mouvements, révisions 1..100
    """
    product = make_product(initial_stock=0, low_stock_threshold=0)

    with ThreadPoolExecutor(max_workers=20) as pool:
        results = list(pool.map(lambda _: ledger.update_stock(product.id, 1, MovementType.stock_in), range(100)))

    assert len(results) == 100
    assert ledger.get_product(product.id).stock_quantity == 100

    movements = ledger.list_movements(product.id)
    assert len(movements) == 100
    assert [m.revision for m in movements] == list(range(1, 101))
    assert sorted(m.new_quantity for m in movements) == list(range(1, 101))
    assert ledger.verify_history(product.id) is True


def test_concurrent_mixed_movements_replay_in_commit_order(ledger, make_product):
    product = make_product(initial_stock=50, low_stock_threshold=0)
    rng = random.Random(1234)
    orders = [(rng.randint(1, 10), rng.choice([MovementType.stock_in, MovementType.stock_out])) for _ in range(60)]

    def apply(order):
        qty, kind = order
        try:
            ledger.update_stock(product.id, qty, kind)
            return True
        except InsufficientStock:
            return False

    with ThreadPoolExecutor(max_workers=12) as pool:
        outcomes = list(pool.map(apply, orders))

    movements = ledger.list_movements(product.id)
    # +1 : le mouvement de stock initial
    assert len(movements) == sum(outcomes) + 1
    for earlier, later in zip(movements, movements[1:]):
        assert later.previous_quantity == earlier.new_quantity
    assert all(m.new_quantity >= 0 for m in movements)
    assert ledger.verify_history(product.id) is True


def test_concurrent_updates_on_distinct_products_do_not_interfere(ledger, make_product):
    products = [make_product(initial_stock=10, low_stock_threshold=0) for _ in range(4)]
    jobs = [(p.id, 1) for p in products for _ in range(25)]

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda job: ledger.update_stock(job[0], job[1], MovementType.stock_in), jobs))

    for p in products:
        assert ledger.get_product(p.id).stock_quantity == 35
        assert len(ledger.list_movements(p.id)) == 26
        assert ledger.verify_history(p.id) is True


def test_lock_registry_empties_after_unknown_products(session_factory, notifier):
    """
    GIVEN 500 update_stock sur des produits inexistants
    THEN  aucun verrou ne reste dans le registre
    """
    locks = ProductLocks()
    ledger = StockLedger(StockStore(session_factory, locks=locks), notifier)

    for _ in range(500):
        with pytest.raises(ProductNotFound):
            ledger.update_stock(uuid.uuid4(), 1, MovementType.stock_in)

    assert len(locks) == 0


def test_lock_registry_empties_after_concurrent_updates(session_factory, notifier):
    locks = ProductLocks()
    ledger = StockLedger(StockStore(session_factory, locks=locks), notifier)
    product = ledger.create_product(ProductCreate(sku="LOCK-1", name="Lock", low_stock_threshold=0))

    with ThreadPoolExecutor(max_workers=10) as pool:
        list(pool.map(lambda _: ledger.update_stock(product.id, 1, MovementType.stock_in), range(40)))

    assert ledger.get_product(product.id).stock_quantity == 40
    assert len(locks) == 0


def test_lock_entry_survives_while_a_thread_waits():
    locks = ProductLocks()
    key = uuid.uuid4()
    waiting = threading.Event()
    released = threading.Event()

    def waiter():
        waiting.set()
        with locks.hold(key):
            released.set()

    with locks.hold(key):
        t = threading.Thread(target=waiter)
        t.start()
        waiting.wait(timeout=5)
        assert len(locks) == 1
        assert not released.is_set()

    t.join(timeout=5)
    assert released.is_set()
    assert len(locks) == 0
