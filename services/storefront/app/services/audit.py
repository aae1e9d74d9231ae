from __future__ import annotations

from uuid import uuid4

from packages.shared.schemas.events import EntityTypeV1, EventTypeV1, EventV1
from services.storefront.app.db.models import EventLog
from sqlalchemy.orm import Session


def log_event(
    db: Session,
    *,
    customer_id: int | None,
    entity_type: EntityTypeV1,
    entity_id: str,
    event_type: EventTypeV1,
    event_payload: dict,
) -> None:
    """Stage an audit row. The caller's commit decides whether it sticks."""

    db.add(
        EventLog(
            id=uuid4().hex,
            customer_id=customer_id,
            entity_type=entity_type.value,
            entity_id=entity_id,
            event_type=event_type.value,
            event_payload_json=event_payload,
        )
    )


def list_events(db: Session, entity_type: EntityTypeV1, entity_id: str) -> list[EventV1]:
    rows = (
        db.query(EventLog)
        .filter(EventLog.entity_type == entity_type.value, EventLog.entity_id == entity_id)
        .order_by(EventLog.created_at.asc())
        .limit(200)
        .all()
    )

    return [
        EventV1(
            id=r.id,
            customer_id=r.customer_id,
            entity_type=EntityTypeV1(r.entity_type),
            entity_id=r.entity_id,
            event_type=EventTypeV1(r.event_type),
            payload=r.event_payload_json or {},
            created_at=r.created_at.isoformat(),
        )
        for r in rows
    ]
