from datetime import datetime
from roster_api.extensions import db

# pending -> sent | pending -> retrying -> sent | pending -> retrying -> failed
JOB_PENDING = "pending"
JOB_RETRYING = "retrying"
JOB_SENT = "sent"
JOB_FAILED = "failed"

JOB_STATUSES = (JOB_PENDING, JOB_RETRYING, JOB_SENT, JOB_FAILED)


class NotificationJob(db.Model):
    """One queued message for one recipient."""
    __tablename__ = "notification_jobs"

    id = db.Column(db.Integer, primary_key=True)
    recipient   = db.Column(db.String(32), nullable=False)
    message     = db.Column(db.Text, nullable=False)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="SET NULL"), nullable=True, index=True)

    status       = db.Column(db.String(16), nullable=False, default=JOB_PENDING, index=True)
    attempts     = db.Column(db.Integer, nullable=False, default=0)
    max_attempts = db.Column(db.Integer, nullable=False, default=3)
    next_attempt_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    last_error   = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    sent_at    = db.Column(db.DateTime, nullable=True)
    failed_at  = db.Column(db.DateTime, nullable=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in (JOB_SENT, JOB_FAILED)

    def to_dict(self):
        return {
            "id": self.id,
            "recipient": self.recipient,
            "employee_id": self.employee_id,
            "status": self.status,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "next_attempt_at": self.next_attempt_at.isoformat() if self.next_attempt_at else None,
            "last_error": self.last_error,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "failed_at": self.failed_at.isoformat() if self.failed_at else None,
            "message": self.message,
        }
