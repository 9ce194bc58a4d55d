# roster_api/services/shift_grid.py
from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Optional

from roster_api.extensions import db
from roster_api.models.employee import Employee
from roster_api.models.shift import EmployeeShift
from roster_api.services.shift_codes import NO_SHIFT, normalize_code


@dataclass(frozen=True)
class GridRow:
    employee_id: int
    name: str
    rut: Optional[str] = None


class ShiftGrid:
    """
    Employee × day matrix for one month.

    Only knows what each cell currently displays; business rules live in the
    tracker and the commit pipeline.
    """

    def __init__(self, year: int, month: int, rows: Iterable[GridRow] = (), cells: Dict | None = None,
                 department_id: Optional[int] = None):
        if not 1 <= int(month) <= 12:
            raise ValueError("month must be 1..12")
        self.year = int(year)
        self.month = int(month)
        self.department_id = department_id
        self._rows: Dict[int, GridRow] = {r.employee_id: r for r in rows}
        self._cells: Dict[tuple, str] = {}
        for (eid, day), value in (cells or {}).items():
            code = normalize_code(value)
            if code != NO_SHIFT:
                self._cells[(int(eid), int(day))] = code

    # ---------- loading ----------
    @classmethod
    def load(cls, year: int, month: int, employee_ids: Iterable[int] | None = None,
             department_id: Optional[int] = None) -> "ShiftGrid":
        """
        Build the grid from active employees and their stored shifts for the month.
        With ``department_id`` only that unit's employees are rows.
        """
        first = date(int(year), int(month), 1)
        last = date(int(year), int(month), calendar.monthrange(int(year), int(month))[1])

        q = Employee.query.filter(Employee.status == "active")
        if department_id is not None:
            q = q.filter(Employee.department_id == department_id)
        if employee_ids:
            q = q.filter(Employee.id.in_(list(employee_ids)))
        employees = q.order_by(Employee.first_name.asc(), Employee.last_name.asc()).all()

        rows = [GridRow(e.id, e.name, e.rut) for e in employees]
        ids = [r.employee_id for r in rows]
        cells = {}
        if ids:
            shifts = (
                db.session.query(EmployeeShift)
                .filter(
                    EmployeeShift.employee_id.in_(ids),
                    EmployeeShift.date >= first,
                    EmployeeShift.date <= last,
                )
                .all()
            )
            for s in shifts:
                cells[(s.employee_id, s.date.day)] = s.shift
        return cls(year, month, rows, cells, department_id=department_id)

    # ---------- shape ----------
    @property
    def days_in_month(self) -> int:
        return calendar.monthrange(self.year, self.month)[1]

    @property
    def rows(self) -> List[GridRow]:
        return list(self._rows.values())

    def has_employee(self, employee_id) -> bool:
        return employee_id in self._rows

    def row(self, employee_id) -> GridRow:
        return self._rows[employee_id]

    def has_day(self, day) -> bool:
        return isinstance(day, int) and 1 <= day <= self.days_in_month

    def date_for(self, day: int) -> date:
        return date(self.year, self.month, day)

    # ---------- cells ----------
    def get(self, employee_id: int, day: int) -> str:
        return self._cells.get((employee_id, day), NO_SHIFT)

    def set(self, employee_id: int, day: int, value) -> bool:
        """Write a cell; returns True when the displayed value actually changed."""
        code = normalize_code(value)
        key = (employee_id, day)
        if self._cells.get(key, NO_SHIFT) == code:
            return False
        if code == NO_SHIFT:
            self._cells.pop(key, None)
        else:
            self._cells[key] = code
        return True

    def snapshot(self) -> Dict[tuple, str]:
        return dict(self._cells)

    def to_rows(self) -> List[dict]:
        out = []
        for r in self._rows.values():
            days = {str(d): self.get(r.employee_id, d) for d in range(1, self.days_in_month + 1)}
            out.append({"employee_id": r.employee_id, "name": r.name, "rut": r.rut, "days": days})
        return out
