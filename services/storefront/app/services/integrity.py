from __future__ import annotations

import structlog
from packages.shared.schemas.events import EntityTypeV1, EventTypeV1
from services.storefront.app.db.models import CartLine, utcnow
from services.storefront.app.models.admin import IntegrityReportOut, OrphanedLineOut, OrphanRemovalOut
from services.storefront.app.services.audit import log_event
from services.storefront.app.services.cart_store import cart_key, owner_filter
from services.storefront.app.services.catalog_base import CatalogLookup
from services.storefront.app.services.identity import CartOwner, Customer
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

logger = structlog.get_logger(__name__)


class CartIntegrityChecker:
    """Finds cart lines whose product is gone, globally or for one owner."""

    def __init__(self, db: Session, catalog: CatalogLookup) -> None:
        self._db = db
        self._catalog = catalog

    def find_orphaned(self, owner: CartOwner | None = None) -> list[CartLine]:
        stmt = select(CartLine).order_by(CartLine.id.asc())
        if owner is not None:
            stmt = stmt.where(*owner_filter(owner))

        rows = list(self._db.execute(stmt).scalars())
        products = self._catalog.lookup_many(row.product_id for row in rows)
        return [row for row in rows if row.product_id not in products]

    def verify(self, owner: CartOwner | None = None) -> IntegrityReportOut:
        orphaned = self.find_orphaned(owner)
        if orphaned:
            logger.warning("Orphaned cart lines found", orphaned_count=len(orphaned))

        return IntegrityReportOut(
            integrity_status="issues_found" if orphaned else "healthy",
            has_issues=bool(orphaned),
            orphaned_count=len(orphaned),
            orphaned_items=[
                OrphanedLineOut(
                    owner_kind=row.owner_kind,
                    owner_ref=row.owner_ref,
                    product_id=row.product_id,
                    quantity=row.quantity,
                )
                for row in orphaned
            ],
            checked_at=utcnow().isoformat(),
        )

    def remove_orphaned(self, owner: CartOwner | None = None) -> OrphanRemovalOut:
        orphaned = self.find_orphaned(owner)
        if not orphaned:
            return OrphanRemovalOut(removed_count=0)

        removed = self._db.execute(
            delete(CartLine)
            .where(CartLine.id.in_([row.id for row in orphaned]))
            .execution_options(synchronize_session=False)
        ).rowcount

        log_event(
            self._db,
            customer_id=owner.customer_id if isinstance(owner, Customer) else None,
            entity_type=EntityTypeV1.CART,
            entity_id=cart_key(owner) if owner is not None else "all",
            event_type=EventTypeV1.ORPHANED_LINES_REMOVED,
            event_payload={
                "removed_count": removed,
                "product_ids": sorted({row.product_id for row in orphaned}),
            },
        )
        self._db.commit()

        logger.info("Orphaned cart lines removed", removed_count=removed)
        return OrphanRemovalOut(removed_count=removed)
