# roster_api/services/shift_change_log.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from roster_api.common.errors import PersistenceError
from roster_api.extensions import db
from roster_api.models.shift import EmployeeShift
from roster_api.models.shift_change_log import ShiftChangeLog
from roster_api.services.shift_codes import NO_SHIFT, normalize_code

log = logging.getLogger(__name__)

COMMENT_CREATED = "Turno creado desde plataforma"
COMMENT_UPDATED = "modificado el turno desde plataforma"
COMMENT_DELETED = "Turno eliminado desde plataforma"


@dataclass(frozen=True)
class ShiftChangeLogEntry:
    employee_id: int
    shift_date: date
    old_shift: Optional[str]
    new_shift: str
    changed_by: Optional[int] = None
    comment: Optional[str] = None


def entries_from_changes(changes: Iterable, changed_by=None, comment=None) -> List[ShiftChangeLogEntry]:
    """One log entry per pending change (anything with employee_id/shift_date/old_value/new_value)."""
    comment = (comment or "").strip() or None
    return [
        ShiftChangeLogEntry(
            employee_id=c.employee_id,
            shift_date=c.shift_date,
            old_shift=normalize_code(c.old_value),
            new_shift=normalize_code(c.new_value),
            changed_by=changed_by,
            comment=comment,
        )
        for c in changes
    ]


def _default_comment(old: str, new: str) -> str:
    if new == NO_SHIFT:
        return COMMENT_DELETED
    if not old:
        return COMMENT_CREATED
    return COMMENT_UPDATED


class ShiftChangeLogStore:
    """
    Durable audit trail of committed shift changes.

    ``append`` writes the shift-assignment mutation and its log row together;
    a batch either lands completely or not at all.
    """

    def __init__(self, session=None):
        self.session = session or db.session

    def append(self, entries: Iterable[ShiftChangeLogEntry]) -> List[ShiftChangeLog]:
        entries = list(entries)
        if not entries:
            return []
        s = self.session
        rows: List[ShiftChangeLog] = []
        try:
            for e in entries:
                rows.append(self._apply(e))
            s.commit()
        except SQLAlchemyError as ex:
            s.rollback()
            log.error("Shift change batch rolled back (%d entries): %s", len(entries), ex)
            raise PersistenceError(
                "Could not save shift changes; nothing was stored, please retry",
                payload={"entries": len(entries)},
            ) from ex
        log.info("Stored %d shift change log row(s)", len(rows))
        return rows

    def _apply(self, e: ShiftChangeLogEntry) -> ShiftChangeLog:
        s = self.session
        new = normalize_code(e.new_shift)
        old = normalize_code(e.old_shift)

        current = (
            s.query(EmployeeShift)
            .filter(EmployeeShift.employee_id == e.employee_id, EmployeeShift.date == e.shift_date)
            .first()
        )
        stored = current.shift if current else NO_SHIFT
        if stored != old:
            # another session committed in between; last write wins
            log.warning(
                "Employee %s on %s: expected %r but found %r, overwriting",
                e.employee_id, e.shift_date, old, stored,
            )

        shift_row_id = None
        if new == NO_SHIFT:
            if current is not None:
                s.delete(current)
        else:
            if current is None:
                current = EmployeeShift(employee_id=e.employee_id, date=e.shift_date, shift=new, comments="")
                s.add(current)
            else:
                current.shift = new
            s.flush()
            shift_row_id = current.id

        row = ShiftChangeLog(
            employee_id=e.employee_id,
            employee_shift_id=shift_row_id,
            changed_by=e.changed_by,
            old_shift=old,
            new_shift=new,
            comment=e.comment or _default_comment(old, new),
            shift_date=e.shift_date,
            changed_at=datetime.utcnow(),
        )
        s.add(row)
        s.flush()
        return row

    def backfill_missing_dates(self) -> int:
        """Fill ``shift_date`` on legacy rows from the assignment date, else the row's creation date."""
        s = self.session
        rows = s.query(ShiftChangeLog).filter(ShiftChangeLog.shift_date.is_(None)).all()
        updated = 0
        for r in rows:
            shift_row = s.get(EmployeeShift, r.employee_shift_id) if r.employee_shift_id else None
            if shift_row is not None and shift_row.date:
                r.shift_date = shift_row.date
            else:
                stamp = r.created_at or r.changed_at or datetime.utcnow()
                r.shift_date = stamp.date()
            updated += 1
        try:
            s.commit()
        except SQLAlchemyError as ex:
            s.rollback()
            raise PersistenceError("Backfill of shift_date failed") from ex
        log.info("Backfilled shift_date on %d shift change log row(s)", updated)
        return updated

    # ---------- queries ----------
    def query(self, employee_id=None, date_from=None, date_to=None):
        q = self.session.query(ShiftChangeLog)
        if employee_id:
            q = q.filter(ShiftChangeLog.employee_id == employee_id)
        if date_from:
            q = q.filter(ShiftChangeLog.shift_date >= date_from)
        if date_to:
            q = q.filter(ShiftChangeLog.shift_date <= date_to)
        return q.order_by(ShiftChangeLog.changed_at.desc(), ShiftChangeLog.id.desc())
