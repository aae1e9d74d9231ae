from __future__ import annotations

from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field


class AddToCartRequest(BaseModel):
    # Range checks happen in the cart store so they come back as envelope errors.
    product_id: int
    quantity: int = 1


class UpdateQuantityRequest(BaseModel):
    quantity: int


class CartLineOut(BaseModel):
    product_id: int
    title: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    added_at: str


class CartOwnerOut(BaseModel):
    owner_kind: Literal["customer", "guest"]
    customer_id: int | None = None
    guest_address: str | None = None


class CartView(BaseModel):
    owner: CartOwnerOut
    items: list[CartLineOut] = Field(default_factory=list)
    count: int
    total_items: int
    total_amount: Decimal

    # Lines pointing at vanished products: detected, and deleted when self-healing.
    orphaned_items: int = 0
    removed_items: int = 0


class CartMutation(BaseModel):
    action: Literal["created", "updated", "removed"]
    product_id: int
    quantity: int
    clamped: bool = False
    line: CartLineOut | None = None


class EmptyCartOut(BaseModel):
    removed_rows: int


class CartCountOut(BaseModel):
    count: int
    total_items: int
    removed_items: int = 0


class ItemIntegrityOut(BaseModel):
    product_id: int
    product_exists: bool
    title: str
    unit_price: Decimal
    in_cart: bool
    quantity: int | None = None
    integrity_status: Literal["valid"] = "valid"


class TransferError(BaseModel):
    product_id: int
    error_type: str
    message: str


class TransferOut(BaseModel):
    customer_id: int
    guest_address: str
    transferred_items: int
    merged_items: int
    clamped_items: int
    total_processed: int
    errors: list[TransferError] = Field(default_factory=list)
