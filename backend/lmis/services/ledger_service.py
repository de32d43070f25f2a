# Overview: Service-layer operations for the box event ledger; append and history queries.

from __future__ import annotations

from typing import Iterable, Optional

from sqlalchemy import func

from ..extensions import db
from ..models import BoxEvent, BoxEventType, Facility, User
from ..time_utils import utcnow
"""
LMIS Box Ledger Invariants (authoritative)

- Append-only: one row per state transition. No updates; deletes only via
  the administrative order reset.
- Events are written inside the same DB transaction as the box projection
  change they record.
- "Latest" orders by (created_at DESC, id DESC); id is autoincrement, so
  equal timestamps still resolve to the most recently appended row.
"""


def append_event(
    *,
    box_id: int,
    event_type: str,
    performed_by_user_id: int,
    from_facility_id: int | None = None,
    to_facility_id: int | None = None,
    note: Optional[str] = None,
) -> BoxEvent:
    """Append one ledger row and flush so its id is assigned without committing."""
    if event_type not in BoxEventType.ALL:
        raise ValueError(f"Unknown box event type {event_type}")

    ev = BoxEvent(
        box_id=box_id,
        type=event_type,
        performed_by_user_id=performed_by_user_id,
        from_facility_id=from_facility_id,
        to_facility_id=to_facility_id,
        note=note,
        created_at=utcnow(),
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def append_events(rows: Iterable[dict]) -> list[BoxEvent]:
    """
    Bulk append. Each row holds the keyword arguments of append_event.

    Rows are flushed together and keep their input order, so ids increase
    in the order given.
    """
    now = utcnow()
    events = []
    for row in rows:
        event_type = row["event_type"]
        if event_type not in BoxEventType.ALL:
            raise ValueError(f"Unknown box event type {event_type}")
        events.append(
            BoxEvent(
                box_id=row["box_id"],
                type=event_type,
                performed_by_user_id=row["performed_by_user_id"],
                from_facility_id=row.get("from_facility_id"),
                to_facility_id=row.get("to_facility_id"),
                note=row.get("note"),
                created_at=now,
            )
        )
    db.session.add_all(events)
    db.session.flush()
    return events


def latest_event(box_id: int, event_type: str) -> BoxEvent | None:
    return (
        db.session.query(BoxEvent)
        .filter(BoxEvent.box_id == box_id, BoxEvent.type == event_type)
        .order_by(BoxEvent.created_at.desc(), BoxEvent.id.desc())
        .first()
    )


def latest_events_by_box(box_ids: Iterable[int], event_type: str) -> dict[int, BoxEvent]:
    """
    Map box id -> latest event of `event_type` for that box, in one query.

    Boxes with no such event are absent from the result.
    """
    box_ids = list(box_ids)
    if not box_ids:
        return {}

    ranked = (
        db.session.query(
            BoxEvent.id.label("event_id"),
            func.row_number()
            .over(
                partition_by=BoxEvent.box_id,
                order_by=(BoxEvent.created_at.desc(), BoxEvent.id.desc()),
            )
            .label("rn"),
        )
        .filter(BoxEvent.box_id.in_(box_ids), BoxEvent.type == event_type)
        .subquery()
    )

    events = (
        db.session.query(BoxEvent)
        .join(ranked, ranked.c.event_id == BoxEvent.id)
        .filter(ranked.c.rn == 1)
        .all()
    )
    return {ev.box_id: ev for ev in events}


def box_history(box_id: int, limit: int = 20) -> list[dict]:
    """
    Newest-first events for a box with actor and facility hydration.

    Users and facilities are fetched with one batched lookup each rather than
    per-row joins.
    """
    events = (
        db.session.query(BoxEvent)
        .filter(BoxEvent.box_id == box_id)
        .order_by(BoxEvent.created_at.desc(), BoxEvent.id.desc())
        .limit(limit)
        .all()
    )
    if not events:
        return []

    user_ids = {ev.performed_by_user_id for ev in events}
    facility_ids = {
        fid
        for ev in events
        for fid in (ev.from_facility_id, ev.to_facility_id)
        if fid is not None
    }

    users = {u.id: u for u in db.session.query(User).filter(User.id.in_(user_ids)).all()}
    facilities = (
        {f.id: f for f in db.session.query(Facility).filter(Facility.id.in_(facility_ids)).all()}
        if facility_ids
        else {}
    )

    history = []
    for ev in events:
        row = ev.to_dict()
        user = users.get(ev.performed_by_user_id)
        from_facility = facilities.get(ev.from_facility_id)
        to_facility = facilities.get(ev.to_facility_id)
        row["performedBy"] = user.summary() if user else None
        row["fromFacility"] = from_facility.summary() if from_facility else None
        row["toFacility"] = to_facility.summary() if to_facility else None
        history.append(row)
    return history
