from datetime import datetime
from roster_api.extensions import db

class EmployeeShift(db.Model):
    """One shift code for one employee on one calendar date."""
    __tablename__ = "employee_shifts"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    date     = db.Column(db.Date, nullable=False, index=True)
    shift    = db.Column(db.String(10), nullable=False)   # M, T, N, LM, ...
    comments = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("employee_id", "date", name="uq_employee_shift_date"),
    )

    employee = db.relationship("Employee", backref=db.backref("shifts", lazy="dynamic", passive_deletes=True))
