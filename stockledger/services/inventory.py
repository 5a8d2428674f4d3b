from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Iterable

import structlog

from stockledger.app.core.config import DEFAULT_LOW_STOCK_THRESHOLD
from stockledger.app.db.models.models_v1 import Product, StockMovement, utcnow
from stockledger.app.db.models.core_types import MovementType
from stockledger.app.schemas.product import ProductCreate, ProductFilter
from stockledger.services.errors import (
    InsufficientStock,
    InvalidArgument,
    NotificationFailure,
    ProductNotFound,
)
from stockledger.services.notifications import LogNotifier, Notifier
from stockledger.services.persistence import StockStore

logger = structlog.get_logger(__name__)

REASON_MAX_LENGTH = 255


@dataclass(frozen=True)
class StockUpdateResult:
    """
    Résultat d'un update_stock réussi.

    Le stock EST modifié. notification_error != None signifie seulement
    que l'alerte stock bas n'est pas partie.
    """

    product: Product
    movement: StockMovement
    low_stock: bool
    notification_error: NotificationFailure | None = None

    @property
    def notified(self) -> bool:
        return self.low_stock and self.notification_error is None


def _coerce_movement_type(movement_type: MovementType | str) -> MovementType:
    if isinstance(movement_type, MovementType):
        return movement_type
    try:
        return MovementType(movement_type)
    except ValueError:
        pass
    # accepte aussi le nom de membre ("stock_in")
    try:
        return MovementType[str(movement_type)]
    except KeyError:
        raise InvalidArgument(f"Unknown movement type: {movement_type!r}") from None


def _validate_quantity(quantity: int) -> int:
    # bool est un int en Python : on le refuse explicitement
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidArgument(f"quantity must be an integer (got {quantity!r})")
    if quantity <= 0:
        raise InvalidArgument(f"quantity must be > 0 (got {quantity})")
    return quantity


def _validate_reason(reason: str | None) -> str | None:
    if reason is None:
        return None
    if not isinstance(reason, str):
        raise InvalidArgument(f"reason must be a string (got {type(reason).__name__})")
    reason = reason.strip()
    if len(reason) > REASON_MAX_LENGTH:
        raise InvalidArgument(f"reason must be at most {REASON_MAX_LENGTH} characters")
    return reason or None


def apply_movement(current: int, quantity: int, movement_type: MovementType) -> int | None:
    """
    Nouvelle quantité après le mouvement, ou None si le stock est insuffisant.

    - STOCK_IN   : current + quantity
    - STOCK_OUT  : current - quantity (exige current >= quantity)
    - ADJUSTMENT : quantity (valeur absolue, pas un delta)
    """
    if movement_type is MovementType.stock_in:
        return current + quantity
    if movement_type is MovementType.stock_out:
        if current < quantity:
            return None
        return current - quantity
    return quantity


def replay_quantity(movements: Iterable[StockMovement]) -> int | None:
    """
    Rejoue l'historique (ordre de révision) à partir du previous_quantity
    du premier mouvement. None si l'historique est vide.
    """
    quantity = None
    for mv in movements:
        if quantity is None:
            quantity = mv.previous_quantity
        quantity += mv.quantity
    return quantity


class StockLedger:
    def __init__(self, store: StockStore, notifier: Notifier | None = None) -> None:
        self.store = store
        self.notifier = notifier or LogNotifier()

    # ---------- PRODUCTS ----------
    def create_product(self, payload: ProductCreate) -> Product:
        threshold = payload.low_stock_threshold
        if threshold is None:
            threshold = DEFAULT_LOW_STOCK_THRESHOLD

        now = utcnow()
        product = Product(
            id=uuid.uuid4(),
            sku=payload.sku,
            name=payload.name,
            description=payload.description,
            category=payload.category,
            unit_price=payload.unit_price,
            stock_quantity=payload.initial_stock,
            low_stock_threshold=threshold,
            revision=0,
            created_at=now,
            updated_at=now,
        )

        # le stock initial passe par un mouvement : l'historique rejoue depuis 0
        initial_movement = None
        if payload.initial_stock > 0:
            product.revision = 1
            initial_movement = StockMovement(
                id=uuid.uuid4(),
                product_id=product.id,
                movement_type=MovementType.stock_in,
                quantity=payload.initial_stock,
                reason="Initial stock",
                previous_quantity=0,
                new_quantity=payload.initial_stock,
                revision=1,
                created_at=now,
            )

        product.movements = [initial_movement] if initial_movement is not None else []
        self.store.add_product(product)
        logger.info(
            "Product created",
            product_id=str(product.id),
            sku=product.sku,
            initial_stock=product.stock_quantity,
        )
        return product

    def get_product(self, product_id: uuid.UUID) -> Product:
        product = self.store.get_product(product_id)
        if product is None:
            raise ProductNotFound(product_id)
        return product

    def list_products(self, product_filter: ProductFilter | None = None) -> list[Product]:
        return self.store.list_products(product_filter)

    # ---------- STOCK ----------
    def update_stock(
        self,
        product_id: uuid.UUID,
        quantity: int,
        movement_type: MovementType | str,
        reason: str | None = None,
    ) -> StockUpdateResult:
        """
        Applique un mouvement de stock et journalise le StockMovement.

        Règles :
        - quantity > 0 pour TOUS les types (ADJUSTMENT compris)
        - STOCK_OUT refusé si stock insuffisant, rien n'est écrit
        - produit + mouvement commités ensemble (ou rien)
        - alerte stock bas APRÈS commit, hors verrou ; son échec
          ne défait pas le mouvement
        """
        quantity = _validate_quantity(quantity)
        movement_type = _coerce_movement_type(movement_type)
        reason = _validate_reason(reason)

        with self.store.locked_product(product_id) as (db, product):
            if product is None:
                logger.warning("Product not found for stock update", product_id=str(product_id))
                raise ProductNotFound(product_id)

            previous = product.stock_quantity
            new = apply_movement(previous, quantity, movement_type)
            if new is None:
                logger.warning(
                    "Insufficient stock",
                    product_id=str(product_id),
                    available=previous,
                    requested=quantity,
                )
                raise InsufficientStock(product_id, available=previous, requested=quantity)

            now = utcnow()
            product.stock_quantity = new
            product.revision += 1
            product.updated_at = now

            movement = StockMovement(
                id=uuid.uuid4(),
                product_id=product.id,
                movement_type=movement_type,
                quantity=new - previous,
                reason=reason,
                previous_quantity=previous,
                new_quantity=new,
                revision=product.revision,
                created_at=now,
            )
            self.store.save_product_and_movement(db, product, movement)

        logger.info(
            "Stock updated",
            product_id=str(product_id),
            movement_type=movement_type.value,
            quantity=quantity,
            previous_quantity=previous,
            new_quantity=new,
        )

        low_stock = new <= product.low_stock_threshold
        notification_error = None
        if low_stock:
            notification_error = self._notify_low_stock(product)

        return StockUpdateResult(
            product=product,
            movement=movement,
            low_stock=low_stock,
            notification_error=notification_error,
        )

    def _notify_low_stock(self, product: Product) -> NotificationFailure | None:
        try:
            self.notifier.notify_low_stock(product)
        except Exception as exc:
            logger.error(
                "Low stock notification failed",
                product_id=str(product.id),
                stock_quantity=product.stock_quantity,
                exc_info=True,
            )
            failure = NotificationFailure(f"Low stock alert failed for product {product.id}: {exc}")
            failure.__cause__ = exc
            return failure
        return None

    def get_low_stock_products(self) -> list[Product]:
        return self.store.query_low_stock()

    # ---------- HISTORY ----------
    def list_movements(self, product_id: uuid.UUID) -> list[StockMovement]:
        self.get_product(product_id)
        return self.store.list_movements(product_id)

    def verify_history(self, product_id: uuid.UUID) -> bool:
        """True si le rejeu des mouvements redonne le stock courant."""
        product = self.get_product(product_id)
        replayed = replay_quantity(self.store.list_movements(product_id))
        if replayed is None:
            # pas de mouvement : le stock ne peut être que l'initial, 0
            return product.stock_quantity == 0
        return replayed == product.stock_quantity
