"""Cart ownership: a request belongs to exactly one customer or one guest.

This module is the only place that reads ambient request state (session header,
forwarded-for header, socket peer). Everything downstream receives a ``CartOwner``.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from typing import ClassVar

import structlog
from fastapi import Request
from services.storefront.app.errors import AuthenticationRequiredError, InvalidAddressError, ValidationError
from services.storefront.app.services.validation import validate_customer_id
from services.storefront.app.settings import StorefrontSettings

logger = structlog.get_logger(__name__)

CUSTOMER_HEADER = "X-Customer-Id"
FORWARDED_FOR_HEADER = "X-Forwarded-For"


@dataclass(frozen=True, slots=True)
class Customer:
    kind: ClassVar[str] = "customer"

    customer_id: int

    @property
    def ref(self) -> str:
        return str(self.customer_id)


@dataclass(frozen=True, slots=True)
class Guest:
    kind: ClassVar[str] = "guest"

    address: str

    @property
    def ref(self) -> str:
        return self.address


CartOwner = Customer | Guest


@dataclass(frozen=True, slots=True)
class RequestContext:
    """Identity inputs as handed over by the session and transport layers."""

    customer_id: str | int | None = None
    client_address: str | None = None


def normalize_address(raw: str) -> str:
    """Canonical string form of an IPv4/IPv6 address.

    IPv4-mapped IPv6 collapses to IPv4 so ``::ffff:10.0.0.1`` and ``10.0.0.1`` share
    one guest cart.
    """

    candidate = raw.strip()
    if candidate.startswith("[") and candidate.endswith("]"):
        candidate = candidate[1:-1]
    try:
        ip = ipaddress.ip_address(candidate)
    except ValueError:
        raise InvalidAddressError(raw) from None

    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return ip.compressed


def guest_address(context: RequestContext, settings: StorefrontSettings) -> str:
    raw = context.client_address
    if raw is None or not str(raw).strip():
        # Known degradation: every address-less caller shares this one guest cart.
        logger.warning(
            "No transport address; using fallback guest identity",
            fallback_address=settings.guest_fallback_address,
        )
        return normalize_address(settings.guest_fallback_address)
    return normalize_address(str(raw))


def resolve(context: RequestContext, settings: StorefrontSettings) -> CartOwner:
    if context.customer_id is not None and str(context.customer_id).strip():
        return Customer(validate_customer_id(context.customer_id))
    return Guest(guest_address(context, settings))


def owner_from_row(owner_kind: str, owner_ref: str) -> CartOwner:
    if owner_kind == Customer.kind:
        return Customer(int(owner_ref))
    if owner_kind == Guest.kind:
        return Guest(owner_ref)
    raise ValidationError("owner_kind", owner_kind, "unknown_owner_kind", "Unknown cart owner kind")


def describe(owner: CartOwner) -> dict[str, str | int]:
    if isinstance(owner, Customer):
        return {"owner_kind": owner.kind, "customer_id": owner.customer_id}
    return {"owner_kind": owner.kind, "guest_address": owner.address}


def context_from_request(request: Request, settings: StorefrontSettings) -> RequestContext:
    customer_id = request.headers.get(CUSTOMER_HEADER)

    address: str | None = None
    forwarded = request.headers.get(FORWARDED_FOR_HEADER)
    if settings.trust_forwarded_for and forwarded:
        address = forwarded.split(",")[0].strip() or None
    if address is None and request.client is not None:
        address = request.client.host

    return RequestContext(customer_id=customer_id, client_address=address)


def require_customer(context: RequestContext, settings: StorefrontSettings, action: str) -> Customer:
    owner = resolve(context, settings)
    if not isinstance(owner, Customer):
        raise AuthenticationRequiredError(f"Login required to {action}")
    return owner


def owner_from_params(customer_id: object | None, guest_address: str | None) -> CartOwner | None:
    """Optional owner scope for admin tools; neither given means every cart."""

    has_customer = customer_id is not None and str(customer_id).strip() != ""
    has_guest = guest_address is not None and guest_address.strip() != ""
    if has_customer and has_guest:
        raise ValidationError(
            "owner", None, "ambiguous_owner", "Give either customer_id or guest_address, not both"
        )
    if has_customer:
        return Customer(validate_customer_id(customer_id))
    if has_guest:
        return Guest(normalize_address(guest_address))
    return None
