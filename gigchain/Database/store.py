# Database/store.py
# Write helpers shared by the replicator and the orchestrator.
# None of these commit; the caller owns the transaction.

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Type

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import StateConflictError
from ..models import XP


def upsert_by_key(session: Session, model: Type[Any], key: str, rows: Iterable[Dict[str, Any]]) -> int:
    """
    Insert-or-update keyed on a natural id column. Only the keys present in
    each row are written, so columns a row does not mention keep their value.
    """
    rows = [r for r in rows if r.get(key)]
    if not rows:
        return 0

    column = getattr(model, key)
    keys = [r[key] for r in rows]
    existing = {
        getattr(obj, key): obj
        for obj in session.execute(select(model).where(column.in_(keys))).scalars()
    }

    for row in rows:
        obj = existing.get(row[key])
        if obj is None:
            obj = model(**row)
            session.add(obj)
            existing[row[key]] = obj
        else:
            for field, value in row.items():
                setattr(obj, field, value)
    session.flush()
    return len(rows)


def replace_all(session: Session, model: Type[Any], rows: List[Dict[str, Any]]) -> int:
    """Delete every row of `model` and insert `rows` (append-only projections)."""
    session.execute(delete(model))
    if rows:
        session.add_all(model(**r) for r in rows)
    session.flush()
    return len(rows)


def increment_xp(session: Session, account_id: str, points: int) -> None:
    """
    xp_points += points as a single UPDATE, so concurrent releases for the
    same freelancer never lose an increment. Inserts the row on first award.
    """
    if points < 0:
        raise ValueError("XP can only increase")

    stmt = (
        update(XP)
        .where(XP.user_account_id == account_id)
        .values(xp_points=XP.xp_points + points)
    )
    if session.execute(stmt).rowcount:
        return

    try:
        with session.begin_nested():
            session.add(XP(user_account_id=account_id, xp_points=points))
    except IntegrityError:
        # Another transaction inserted the row first.
        session.execute(stmt)


def xp_points(session: Session, account_id: str) -> int:
    value = session.execute(
        select(XP.xp_points).where(XP.user_account_id == account_id)
    ).scalar_one_or_none()
    return int(value or 0)


def add_unique(session: Session, obj: Any, message: str, **context: Any) -> None:
    """Add and flush `obj`; a unique-constraint violation becomes a 409."""
    session.add(obj)
    try:
        session.flush()
    except IntegrityError as e:
        session.rollback()
        raise StateConflictError(message, code="duplicate", **context) from e
