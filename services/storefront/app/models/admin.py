from __future__ import annotations

from pydantic import BaseModel, Field


class CleanupRequest(BaseModel):
    # Falls back to STOREFRONT_GUEST_EXPIRY_HOURS.
    expiry_hours: int | None = None
    retry_pending: bool = True


class ExpiredGuestCartsOut(BaseModel):
    expiry_hours: int
    cutoff: str
    guests_affected: int
    lines_deleted: int


class PendingCleanupOut(BaseModel):
    attempted: int
    resolved: int
    failed: int


class CleanupOut(BaseModel):
    expired: ExpiredGuestCartsOut
    pending: PendingCleanupOut | None = None


class GuestCartStatisticsOut(BaseModel):
    unique_guests: int
    total_guest_items: int
    total_guest_quantity: int
    avg_items_per_guest: float
    oldest_added_at: str | None = None


class OrphanedLineOut(BaseModel):
    owner_kind: str
    owner_ref: str
    product_id: int
    quantity: int


class IntegrityReportOut(BaseModel):
    integrity_status: str
    has_issues: bool
    orphaned_count: int
    orphaned_items: list[OrphanedLineOut] = Field(default_factory=list)
    checked_at: str


class OrphanRemovalOut(BaseModel):
    removed_count: int


class IntegrityRequest(BaseModel):
    customer_id: int | None = None
    guest_address: str | None = None
