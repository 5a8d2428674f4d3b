from __future__ import annotations

from typing import Protocol

import structlog

from stockledger.app.db.models.models_v1 import Product

logger = structlog.get_logger(__name__)


class Notifier(Protocol):
    def notify_low_stock(self, product: Product) -> None: ...


class LogNotifier:
    """Notifier par défaut : trace l'alerte, ne livre rien (email/SMS hors périmètre)."""

    def notify_low_stock(self, product: Product) -> None:
        logger.warning(
            "Low stock alert",
            product_id=str(product.id),
            sku=product.sku,
            stock_quantity=product.stock_quantity,
            low_stock_threshold=product.low_stock_threshold,
        )
