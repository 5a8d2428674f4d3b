"""
Erreurs du ledger de stock.

Chaque erreur porte un ``code`` stable : l'appelant le traduit en statut
(404, 409, ...) sans parser le message.
"""

from __future__ import annotations


class LedgerError(Exception):
    code = "LEDGER_ERROR"


class ProductNotFound(LedgerError):
    code = "NOT_FOUND"

    def __init__(self, product_id) -> None:
        super().__init__(f"Product with id '{product_id}' was not found")
        self.product_id = product_id


class InvalidArgument(LedgerError, ValueError):
    code = "INVALID_ARGUMENT"


class InsufficientStock(LedgerError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, product_id, *, available: int, requested: int) -> None:
        super().__init__(f"Insufficient available stock (available={available}, requested={requested})")
        self.product_id = product_id
        self.available = available
        self.requested = requested


class DuplicateSku(LedgerError):
    code = "DUPLICATE_SKU"

    def __init__(self, sku: str) -> None:
        super().__init__(f"SKU already exists: {sku}")
        self.sku = sku


class PersistenceFailure(LedgerError):
    """Le produit et son mouvement n'ont pas pu être commités."""

    code = "PERSISTENCE_FAILURE"


class NotificationFailure(LedgerError):
    """
    L'alerte stock bas a échoué APRÈS le commit du mouvement.

    Jamais levée par le ledger : portée par le résultat de update_stock.
    """

    code = "NOTIFICATION_FAILURE"
