from __future__ import annotations

import contextlib
import uuid
from typing import Iterator

import structlog
from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from stockledger.app.db.models.models_v1 import Product, StockMovement
from stockledger.app.schemas.product import ProductFilter
from stockledger.services.errors import DuplicateSku, PersistenceFailure
from stockledger.services.locks import ProductLocks

logger = structlog.get_logger(__name__)


class StockStore:
    """
    Accès base pour le ledger.

    Lectures : une session courte par appel, objets détachés
    (expire_on_commit=False sur la factory).
    Écriture de stock : locked_product() + save_product_and_movement(),
    dans la même session / transaction.
    """

    def __init__(self, session_factory: sessionmaker, locks: ProductLocks | None = None) -> None:
        self._session_factory = session_factory
        self._locks = locks or ProductLocks()

    # ---------- READ ----------
    def get_product(self, product_id: uuid.UUID) -> Product | None:
        with self._session_factory() as db:
            return db.get(Product, product_id, options=[selectinload(Product.movements)])

    def list_products(self, product_filter: ProductFilter | None = None) -> list[Product]:
        stmt = select(Product).options(selectinload(Product.movements)).order_by(Product.sku)

        if product_filter is not None:
            if product_filter.category:
                stmt = stmt.where(Product.category == product_filter.category)

            if product_filter.search_term:
                pattern = f"%{product_filter.search_term}%"
                stmt = stmt.where(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))

            if product_filter.min_price is not None:
                stmt = stmt.where(Product.unit_price >= product_filter.min_price)

            if product_filter.max_price is not None:
                stmt = stmt.where(Product.unit_price <= product_filter.max_price)

            if product_filter.in_stock_only:
                stmt = stmt.where(Product.stock_quantity > 0)

        with self._session_factory() as db:
            return list(db.execute(stmt).scalars().all())

    def list_movements(self, product_id: uuid.UUID) -> list[StockMovement]:
        with self._session_factory() as db:
            rows = db.execute(
                select(StockMovement)
                .where(StockMovement.product_id == product_id)
                .order_by(StockMovement.revision.asc())
            ).scalars().all()
            return list(rows)

    def query_low_stock(self) -> list[Product]:
        """Produits avec stock_quantity <= low_stock_threshold, les plus vides d'abord."""
        with self._session_factory() as db:
            rows = db.execute(
                select(Product)
                .options(selectinload(Product.movements))
                .where(Product.stock_quantity <= Product.low_stock_threshold)
                .order_by(Product.stock_quantity.asc(), Product.sku.asc())
            ).scalars().all()
            return list(rows)

    # ---------- WRITE ----------
    def add_product(self, product: Product) -> Product:
        """Insère le produit ; ses mouvements initiaux suivent par cascade."""
        with self._session_factory() as db:
            exists = db.execute(select(Product.id).where(Product.sku == product.sku)).scalar_one_or_none()
            if exists:
                raise DuplicateSku(product.sku)

            db.add(product)
            try:
                db.commit()
            except IntegrityError as exc:
                # course sur le SKU entre le SELECT et l'INSERT
                db.rollback()
                raise DuplicateSku(product.sku) from exc
            except SQLAlchemyError as exc:
                db.rollback()
                logger.error("Product insert failed", sku=product.sku, exc_info=True)
                raise PersistenceFailure(f"Could not create product {product.sku}") from exc
            return product

    @contextlib.contextmanager
    def locked_product(self, product_id: uuid.UUID) -> Iterator[tuple[Session, Product | None]]:
        """
        Ouvre une transaction et verrouille la ligne produit.

        - verrou in-process par produit (threads)
        - SELECT ... FOR UPDATE (entre processus, Postgres)
        Sans commit explicite, tout est rollback à la sortie.
        """
        with self._locks.hold(product_id):
            db = self._session_factory()
            try:
                product = (
                    db.execute(
                        select(Product)
                        .where(Product.id == product_id)
                        .options(selectinload(Product.movements))
                        .with_for_update()
                    )
                    .scalar_one_or_none()
                )
                yield db, product
            finally:
                db.close()

    def save_product_and_movement(self, db: Session, product: Product, movement: StockMovement) -> None:
        """Commit atomique : produit mis à jour + nouveau mouvement, ou rien."""
        if movement not in product.movements:
            product.movements.append(movement)
        db.add(product)
        db.add(movement)
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error(
                "Stock commit failed",
                product_id=str(product.id),
                revision=movement.revision,
                exc_info=True,
            )
            raise PersistenceFailure(f"Could not commit stock movement for product {product.id}") from exc
