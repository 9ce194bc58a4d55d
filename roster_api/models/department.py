from datetime import datetime
from roster_api.extensions import db

class Department(db.Model):
    """Operational unit an employee belongs to (Patrullaje, Fiscalización, Alerta Móvil...). One roster grid per unit."""
    __tablename__ = "departments"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), unique=True, nullable=False)
    is_operational = db.Column(db.Boolean, default=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "is_operational": self.is_operational,
            "is_active": self.is_active,
        }
