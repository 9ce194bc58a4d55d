from datetime import datetime
from roster_api.extensions import db

class ShiftChangeLog(db.Model):
    """
    Audit row for one committed shift change.

    Written once per employee+day+commit and never updated afterwards, except by
    the shift_date backfill. ``shift_date`` is nullable only because legacy rows
    predate the column.
    """
    __tablename__ = "shift_change_logs"

    id = db.Column(db.Integer, primary_key=True)
    employee_id       = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    employee_shift_id = db.Column(db.Integer, db.ForeignKey("employee_shifts.id", ondelete="SET NULL"), nullable=True, index=True)
    changed_by        = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    old_shift  = db.Column(db.String(10), nullable=True)
    new_shift  = db.Column(db.String(10), nullable=False)   # "" when the shift was cleared
    comment    = db.Column(db.Text, nullable=True)
    shift_date = db.Column(db.Date, nullable=True, index=True)

    changed_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    employee       = db.relationship("Employee")
    employee_shift = db.relationship("EmployeeShift")
    author         = db.relationship("User", foreign_keys=[changed_by])

    def to_dict(self):
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "employee_name": self.employee.name if self.employee else None,
            "employee_shift_id": self.employee_shift_id,
            "changed_by": self.changed_by,
            "changed_by_name": self.author.full_name if self.author else None,
            "old_shift": self.old_shift,
            "new_shift": self.new_shift,
            "comment": self.comment,
            "shift_date": self.shift_date.isoformat() if self.shift_date else None,
            "changed_at": self.changed_at.isoformat() if self.changed_at else None,
        }
