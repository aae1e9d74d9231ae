from __future__ import annotations

import pytest
from packages.shared.schemas.events import EntityTypeV1, EventTypeV1
from services.storefront.app.errors import InvalidAddressError, ValidationError
from services.storefront.app.services.audit import list_events
from services.storefront.app.services.cart_merge import CartMergeEngine
from services.storefront.app.services.cart_store import CartStore
from services.storefront.app.services.catalog_mock import MockCatalogLookup
from services.storefront.app.services.identity import Customer, Guest
from sqlalchemy.orm import Session

GUEST = Guest("198.51.100.23")
BOB = Customer(11)


def _quantities(store: CartStore, owner) -> dict[int, int]:
    return {item.product_id: item.quantity for item in store.list(owner, self_heal=False).items}


def test_merge_sums_quantities(store: CartStore) -> None:
    store.add(GUEST, 1, 2)
    store.add(BOB, 1, 3)

    result = CartMergeEngine(store).transfer_guest_to_customer(GUEST.address, BOB.customer_id)

    assert result.merged_items == 1
    assert result.transferred_items == 0
    assert _quantities(store, BOB) == {1: 5}
    assert _quantities(store, GUEST) == {}


def test_merge_moves_lines_the_customer_lacks(store: CartStore) -> None:
    store.add(GUEST, 2, 1)
    store.add(GUEST, 3, 4)
    store.add(BOB, 2, 1)

    result = CartMergeEngine(store).transfer_guest_to_customer(GUEST.address, BOB.customer_id)

    assert result.transferred_items == 1
    assert result.merged_items == 1
    assert result.total_processed == 2
    assert result.errors == []
    assert _quantities(store, BOB) == {2: 2, 3: 4}


def test_merge_clamps_at_maximum(store: CartStore) -> None:
    store.add(GUEST, 1, 600)
    store.add(BOB, 1, 600)

    result = CartMergeEngine(store).transfer_guest_to_customer(GUEST.address, BOB.customer_id)

    assert result.clamped_items == 1
    assert _quantities(store, BOB) == {1: 999}


def test_merge_reports_and_drops_vanished_products(
    store: CartStore, catalog: MockCatalogLookup
) -> None:
    store.add(GUEST, 1, 1)
    store.add(GUEST, 4, 1)
    catalog.discontinue(4)

    result = CartMergeEngine(store).transfer_guest_to_customer(GUEST.address, BOB.customer_id)

    assert result.transferred_items == 1
    assert [(e.product_id, e.error_type) for e in result.errors] == [(4, "orphaned_product")]
    assert _quantities(store, BOB) == {1: 1}
    assert _quantities(store, GUEST) == {}


def test_merge_of_empty_guest_cart(store: CartStore) -> None:
    result = CartMergeEngine(store).transfer_guest_to_customer(GUEST.address, BOB.customer_id)
    assert result.total_processed == 0
    assert result.transferred_items == 0


def test_merge_canonicalizes_guest_address(store: CartStore) -> None:
    store.add(GUEST, 1, 1)

    result = CartMergeEngine(store).transfer_guest_to_customer(
        "::ffff:" + GUEST.address, BOB.customer_id
    )

    assert result.guest_address == GUEST.address
    assert result.transferred_items == 1


def test_merge_validates_inputs(store: CartStore) -> None:
    engine = CartMergeEngine(store)
    with pytest.raises(InvalidAddressError):
        engine.transfer_guest_to_customer("nope", BOB.customer_id)
    with pytest.raises(ValidationError):
        engine.transfer_guest_to_customer(GUEST.address, 0)


def test_merge_is_audited(store: CartStore, db: Session) -> None:
    store.add(GUEST, 1, 1)
    CartMergeEngine(store).transfer_guest_to_customer(GUEST.address, BOB.customer_id)

    events = list_events(db, EntityTypeV1.CART, "customer:11")
    assert [e.event_type for e in events] == [EventTypeV1.CART_TRANSFERRED]
    assert events[0].payload["transferred_items"] == 1
