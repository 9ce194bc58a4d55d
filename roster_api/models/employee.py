from datetime import datetime
from roster_api.extensions import db

class Employee(db.Model):
    __tablename__ = "employees"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, unique=True)

    rut        = db.Column(db.String(12), unique=True, nullable=True)   # e.g. 12345678-K
    first_name = db.Column(db.String(80), nullable=False)
    last_name  = db.Column(db.String(80), nullable=True)
    phone      = db.Column(db.String(20), nullable=True)                 # local number, no country prefix
    status     = db.Column(db.String(16), default="active", nullable=False)  # active/inactive
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    department = db.relationship("Department", backref="employees")

    @property
    def name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)
