# roster_api/services/change_tracker.py
"""
Pending (uncommitted) edits for one editing session.

Changes are immutable records indexed by (employee_id, day). Re-editing a cell
replaces its record, keeping the ``old_value`` captured on the first edit, so
undoing everything always lands on the grid as it was when the session began.
"""
from __future__ import annotations

import itertools
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Callable, Dict, List, Optional

from roster_api.common.errors import ValidationError
from roster_api.services.shift_codes import is_valid_code, normalize_code
from roster_api.services.shift_grid import ShiftGrid

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingChange:
    id: str
    employee_id: int
    employee_name: str
    employee_rut: Optional[str]
    year: int
    month: int
    day: int
    old_value: str
    new_value: str
    timestamp: datetime
    seq: int = field(default=0, compare=False, repr=False)

    @property
    def key(self) -> tuple:
        return (self.employee_id, self.day)

    @property
    def shift_date(self) -> date:
        return date(self.year, self.month, self.day)

    def to_dict(self):
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "employee_name": self.employee_name,
            "employee_rut": self.employee_rut,
            "day": self.day,
            "date": self.shift_date.isoformat(),
            "old_value": self.old_value,
            "new_value": self.new_value,
            "timestamp": self.timestamp.isoformat(),
        }


def _as_int(val, field_name):
    if isinstance(val, bool):
        raise ValidationError(f"{field_name} must be integer")
    try:
        return int(val)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be integer")


class ChangeTracker:

    def __init__(self, grid: ShiftGrid, clock: Callable[[], datetime] | None = None):
        self.grid = grid
        self._clock = clock or datetime.utcnow
        self._seq = itertools.count(1)
        self._changes: Dict[tuple, PendingChange] = {}

    # ---------- read ----------
    @property
    def changes(self) -> List[PendingChange]:
        """Pending changes in registration order (by first edit of each cell)."""
        return list(self._changes.values())

    def __len__(self):
        return len(self._changes)

    def find(self, change_id: str) -> Optional[PendingChange]:
        for c in self._changes.values():
            if c.id == change_id:
                return c
        return None

    # ---------- edit ----------
    def register_change(
        self,
        employee_id,
        employee_name: str | None,
        employee_rut: str | None,
        day,
        new_value,
    ) -> Optional[PendingChange]:
        """
        Record an edit of one cell and show it in the grid.

        Returns the resulting PendingChange, or None when the edit leaves the cell
        at its pre-session value (the entry is dropped).
        """
        eid = _as_int(employee_id, "employee_id")
        d = _as_int(day, "day")
        if not self.grid.has_employee(eid):
            raise ValidationError(f"Unknown employee {eid} for {self.grid.year}-{self.grid.month:02d}")
        if not self.grid.has_day(d):
            raise ValidationError(f"Day {d} is outside {self.grid.year}-{self.grid.month:02d}")
        if not is_valid_code(new_value):
            raise ValidationError(f"Invalid shift code {new_value!r}")

        code = normalize_code(new_value)
        key = (eid, d)
        now = self._clock()
        existing = self._changes.get(key)

        if existing is None:
            old = self.grid.get(eid, d)
            if old == code:
                return None
            row = self.grid.row(eid)
            change = PendingChange(
                id=uuid.uuid4().hex,
                employee_id=eid,
                employee_name=employee_name or row.name,
                employee_rut=employee_rut if employee_rut is not None else row.rut,
                year=self.grid.year,
                month=self.grid.month,
                day=d,
                old_value=old,
                new_value=code,
                timestamp=now,
                seq=next(self._seq),
            )
        else:
            if code == existing.old_value:
                # edited back by hand
                del self._changes[key]
                self.grid.set(eid, d, code)
                return None
            change = replace(existing, new_value=code, timestamp=now, seq=next(self._seq))

        self._changes[key] = change
        self.grid.set(eid, d, code)
        return change

    # ---------- undo ----------
    def undo_last_change(self) -> Optional[PendingChange]:
        if not self._changes:
            return None
        last = max(self._changes.values(), key=lambda c: (c.timestamp, c.seq))
        return self._revert(last)

    def undo_specific_change(self, change_id: str) -> Optional[PendingChange]:
        change = self.find(change_id)
        if change is None:
            return None
        return self._revert(change)

    def clear_all(self) -> List[PendingChange]:
        reverted = self.changes
        for c in reverted:
            self.grid.set(c.employee_id, c.day, c.old_value)
        self._changes = {}
        return reverted

    def _revert(self, change: PendingChange) -> PendingChange:
        del self._changes[change.key]
        self.grid.set(change.employee_id, change.day, change.old_value)
        return change

    # ---------- commit ----------
    def commit(self, committer: Callable[[List[PendingChange]], object]):
        """
        Hand the pending list to ``committer`` (persist + notify).

        On success the pending list is emptied and the grid keeps the new values
        as confirmed. Any exception leaves the pending list untouched.
        """
        if not self._changes:
            raise ValidationError("No pending changes to commit")
        batch = self.changes
        result = committer(batch)
        self._changes = {}
        log.info("Committed %d pending shift change(s) for %d-%02d", len(batch), self.grid.year, self.grid.month)
        return result
