"""Cart line storage keyed by (owner, product).

One row per owner and product is guaranteed by the ``uq_cart_lines_owner_product``
constraint; ``add`` folds into the existing row with an atomic, clamped increment and
falls back to an insert inside a savepoint. Reads join against the catalog and, when
self-healing, delete lines whose product has vanished.
"""

from __future__ import annotations

import random
import time
from collections.abc import Sequence
from dataclasses import dataclass

import structlog
from services.storefront.app.db.models import MAX_LINE_QUANTITY, CartLine, utcnow
from services.storefront.app.errors import (
    NotFoundError,
    OrphanedProductError,
    ProductNotAvailableError,
    is_lock_error,
)
from services.storefront.app.models.cart import (
    CartCountOut,
    CartLineOut,
    CartMutation,
    CartOwnerOut,
    CartView,
    EmptyCartOut,
    ItemIntegrityOut,
)
from services.storefront.app.services.catalog_base import CatalogLookup, ProductInfo
from services.storefront.app.services.identity import CartOwner, Customer, describe
from services.storefront.app.services.pricing import from_cents
from services.storefront.app.services.validation import validate_product_id, validate_quantity
from sqlalchemy import case, delete, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

logger = structlog.get_logger(__name__)

# Concurrent writers to one cart can collide on the store's write lock.
LOCK_RETRY_ATTEMPTS = 10


@dataclass(frozen=True, slots=True)
class SnapshotLine:
    product_id: int
    title: str
    unit_price_cents: int
    quantity: int

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity


@dataclass(frozen=True, slots=True)
class ValidatedCartSnapshot:
    """Catalog-joined cart at one point in time. Every line references a live product."""

    owner: CartOwner
    lines: tuple[SnapshotLine, ...]
    removed_items: int

    @property
    def subtotal_cents(self) -> int:
        return sum(line.line_total_cents for line in self.lines)

    @property
    def total_items(self) -> int:
        return sum(line.quantity for line in self.lines)


def owner_filter(owner: CartOwner) -> tuple:
    return (CartLine.owner_kind == owner.kind, CartLine.owner_ref == owner.ref)


def owner_out(owner: CartOwner) -> CartOwnerOut:
    if isinstance(owner, Customer):
        return CartOwnerOut(owner_kind="customer", customer_id=owner.customer_id)
    return CartOwnerOut(owner_kind="guest", guest_address=owner.address)


def cart_key(owner: CartOwner) -> str:
    """Stable audit entity id for a cart."""
    return f"{owner.kind}:{owner.ref}"


class CartStore:
    def __init__(self, db: Session, catalog: CatalogLookup) -> None:
        self._db = db
        self._catalog = catalog

    @property
    def db(self) -> Session:
        return self._db

    @property
    def catalog(self) -> CatalogLookup:
        return self._catalog

    # ------------------------------------------------------------------
    # Row access
    # ------------------------------------------------------------------
    def find_line(self, owner: CartOwner, product_id: int) -> CartLine | None:
        stmt = (
            select(CartLine)
            .where(*owner_filter(owner), CartLine.product_id == product_id)
            .execution_options(populate_existing=True)
        )
        return self._db.execute(stmt).scalar_one_or_none()

    def lines(self, owner: CartOwner) -> list[CartLine]:
        stmt = (
            select(CartLine)
            .where(*owner_filter(owner))
            .order_by(CartLine.added_at.asc(), CartLine.id.asc())
            .execution_options(populate_existing=True)
        )
        return list(self._db.execute(stmt).scalars())

    def increment(self, owner: CartOwner, product_id: int, quantity: int) -> int:
        """Add to an existing line in one statement, clamped at the line maximum.

        Returns the number of rows touched (0 or 1).
        """

        summed = CartLine.quantity + quantity
        stmt = (
            update(CartLine)
            .where(*owner_filter(owner), CartLine.product_id == product_id)
            .values(
                quantity=case((summed > MAX_LINE_QUANTITY, MAX_LINE_QUANTITY), else_=summed),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return self._db.execute(stmt).rowcount

    def delete_lines(self, line_ids: Sequence[int]) -> int:
        if not line_ids:
            return 0
        stmt = (
            delete(CartLine)
            .where(CartLine.id.in_(list(line_ids)))
            .execution_options(synchronize_session=False)
        )
        return self._db.execute(stmt).rowcount

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def add(self, owner: CartOwner, product_id: object, quantity: object = 1) -> CartMutation:
        product_id = validate_product_id(product_id)
        quantity = validate_quantity(quantity)

        # Existence is checked before any write, never inferred from a failed one.
        product = self._catalog.price_and_title(product_id)
        if product is None:
            raise ProductNotAvailableError(product_id)

        for attempt in range(1, LOCK_RETRY_ATTEMPTS + 1):
            try:
                action, previous = self._write_line(owner, product_id, quantity)
                self._db.commit()
                break
            except OperationalError as e:
                self._db.rollback()
                if not is_lock_error(e) or attempt == LOCK_RETRY_ATTEMPTS:
                    raise
                logger.warning(
                    "Cart write hit a locked row; retrying",
                    attempt=attempt,
                    product_id=product_id,
                    **describe(owner),
                )
                time.sleep(random.uniform(0.005, 0.02) * attempt)

        line = self.find_line(owner, product_id)
        if line is None:
            raise NotFoundError("Cart item", product_id=product_id, **describe(owner))

        clamped = previous + quantity > MAX_LINE_QUANTITY
        logger.info(
            "Cart line added",
            action=action,
            product_id=product_id,
            requested_quantity=quantity,
            quantity=line.quantity,
            clamped=clamped,
            **describe(owner),
        )
        return CartMutation(
            action=action,
            product_id=product_id,
            quantity=line.quantity,
            clamped=clamped,
            line=self._line_out(line, product),
        )

    def _write_line(self, owner: CartOwner, product_id: int, quantity: int) -> tuple[str, int]:
        """Increment the owner's line or insert it. Returns (action, previous quantity)."""

        existing = self.find_line(owner, product_id)
        previous = existing.quantity if existing is not None else 0

        if existing is not None and self.increment(owner, product_id, quantity):
            return "updated", previous

        try:
            with self._db.begin_nested():
                self._db.add(
                    CartLine(
                        owner_kind=owner.kind,
                        owner_ref=owner.ref,
                        product_id=product_id,
                        quantity=quantity,
                    )
                )
            return "created", previous
        except IntegrityError:
            # Lost the insert race to a concurrent add; fold into the winner's row.
            if not self.increment(owner, product_id, quantity):
                raise
            return "updated", previous

    def update_quantity(self, owner: CartOwner, product_id: object, quantity: object) -> CartMutation:
        product_id = validate_product_id(product_id)
        quantity = validate_quantity(quantity, allow_zero=True)

        line = self.find_line(owner, product_id)
        if line is None:
            raise NotFoundError("Cart item", product_id=product_id, **describe(owner))

        if quantity == 0:
            self._db.delete(line)
            self._db.commit()
            logger.info("Cart line removed by zero quantity", product_id=product_id, **describe(owner))
            return CartMutation(action="removed", product_id=product_id, quantity=0)

        product = self._catalog.price_and_title(product_id)
        if product is None:
            self._db.delete(line)
            self._db.commit()
            logger.warning("Removed cart line for vanished product", product_id=product_id, **describe(owner))
            raise OrphanedProductError(product_id, had_cart_line=True)

        line.quantity = quantity
        line.updated_at = utcnow()
        self._db.commit()

        logger.info("Cart line quantity updated", product_id=product_id, quantity=quantity, **describe(owner))
        return CartMutation(
            action="updated",
            product_id=product_id,
            quantity=quantity,
            line=self._line_out(line, product),
        )

    def remove(self, owner: CartOwner, product_id: object) -> CartMutation:
        product_id = validate_product_id(product_id)

        stmt = (
            delete(CartLine)
            .where(*owner_filter(owner), CartLine.product_id == product_id)
            .execution_options(synchronize_session=False)
        )
        deleted = self._db.execute(stmt).rowcount
        self._db.commit()

        if deleted == 0:
            raise NotFoundError("Cart item", product_id=product_id, **describe(owner))

        logger.info("Cart line removed", product_id=product_id, **describe(owner))
        return CartMutation(action="removed", product_id=product_id, quantity=0)

    def empty(self, owner: CartOwner) -> EmptyCartOut:
        stmt = delete(CartLine).where(*owner_filter(owner)).execution_options(synchronize_session=False)
        removed = self._db.execute(stmt).rowcount
        self._db.commit()

        logger.info("Cart emptied", removed_rows=removed, **describe(owner))
        return EmptyCartOut(removed_rows=removed)

    # ------------------------------------------------------------------
    # Reads (with repair)
    # ------------------------------------------------------------------
    def _read(
        self, owner: CartOwner, self_heal: bool
    ) -> tuple[list[tuple[CartLine, ProductInfo]], int, int]:
        rows = self.lines(owner)
        products = self._catalog.lookup_many(line.product_id for line in rows)

        joined: list[tuple[CartLine, ProductInfo]] = []
        orphaned: list[CartLine] = []
        for line in rows:
            product = products.get(line.product_id)
            if product is None:
                orphaned.append(line)
            else:
                joined.append((line, product))

        removed = 0
        if orphaned and self_heal:
            removed = self.delete_lines([line.id for line in orphaned])
            self._db.commit()
            logger.warning(
                "Removed cart lines for vanished products",
                removed_items=removed,
                product_ids=[line.product_id for line in orphaned],
                **describe(owner),
            )

        return joined, len(orphaned), removed

    def list(self, owner: CartOwner, self_heal: bool = True) -> CartView:
        joined, orphaned_count, removed = self._read(owner, self_heal)

        items = [self._line_out(line, product) for line, product in joined]
        total_cents = sum(product.price_cents * line.quantity for line, product in joined)

        return CartView(
            owner=owner_out(owner),
            items=items,
            count=len(items),
            total_items=sum(item.quantity for item in items),
            total_amount=from_cents(total_cents),
            orphaned_items=orphaned_count,
            removed_items=removed,
        )

    def snapshot(self, owner: CartOwner) -> ValidatedCartSnapshot:
        joined, _orphaned, removed = self._read(owner, self_heal=True)
        return ValidatedCartSnapshot(
            owner=owner,
            lines=tuple(
                SnapshotLine(
                    product_id=line.product_id,
                    title=product.title,
                    unit_price_cents=product.price_cents,
                    quantity=line.quantity,
                )
                for line, product in joined
            ),
            removed_items=removed,
        )

    def count(self, owner: CartOwner) -> CartCountOut:
        joined, _orphaned, removed = self._read(owner, self_heal=True)
        return CartCountOut(
            count=len(joined),
            total_items=sum(line.quantity for line, _product in joined),
            removed_items=removed,
        )

    def validate_item_integrity(self, product_id: object, owner: CartOwner) -> ItemIntegrityOut:
        product_id = validate_product_id(product_id)

        product = self._catalog.price_and_title(product_id)
        line = self.find_line(owner, product_id)

        if product is None:
            if line is not None:
                self._db.delete(line)
                self._db.commit()
                logger.info("Removed orphaned cart line", product_id=product_id, **describe(owner))
            raise OrphanedProductError(product_id, had_cart_line=line is not None)

        return ItemIntegrityOut(
            product_id=product_id,
            product_exists=True,
            title=product.title,
            unit_price=from_cents(product.price_cents),
            in_cart=line is not None,
            quantity=line.quantity if line is not None else None,
        )

    @staticmethod
    def _line_out(line: CartLine, product: ProductInfo) -> CartLineOut:
        return CartLineOut(
            product_id=line.product_id,
            title=product.title,
            quantity=line.quantity,
            unit_price=from_cents(product.price_cents),
            line_total=from_cents(product.price_cents * line.quantity),
            added_at=line.added_at.isoformat(),
        )
