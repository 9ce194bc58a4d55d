# roster_api/services/notifications.py
"""
WhatsApp notification of shift changes.

Messages are never sent inline: ``dispatch`` only writes a ``notification_jobs``
row, and the queue worker delivers it later with bounded retries. A delivery
problem therefore can never undo a commit that already happened.
"""
from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

import requests
from sqlalchemy.exc import SQLAlchemyError

from roster_api.common.errors import NotificationError
from roster_api.extensions import db
from roster_api.models.employee import Employee
from roster_api.models.notification import (
    NotificationJob, JOB_PENDING, JOB_RETRYING, JOB_SENT, JOB_FAILED,
)
from roster_api.services.change_classifier import filter_notifiable
from roster_api.services.notify_config import NotificationConfig
from roster_api.services.shift_codes import describe

log = logging.getLogger(__name__)

# how long a claimed job stays invisible to other workers
CLAIM_LEASE = timedelta(minutes=5)


def _short(msg: str, n: int = 80) -> str:
    msg = (msg or "").replace("\n", " ")
    return msg if len(msg) <= n else msg[: n - 3] + "..."


# ---------- message formatting ----------

def _change_lines(changes) -> List[str]:
    lines = []
    for c in sorted(changes, key=lambda c: c.shift_date):
        when = c.shift_date.strftime("%d/%m/%Y")
        lines.append(f'• *{when}* de "*{describe(c.old_value)}*" a "*{describe(c.new_value)}*"')
    return lines


def compose_message(employee_name: str, changes) -> str:
    """
    Se *Autoriza* el turno de: *Juan Pérez* _siendo modificado_ los días:
    • *15/03/2025* de "*Mañana*" a "*Tarde*"
    """
    header = f"Se *Autoriza* el turno de: *{employee_name}* _siendo modificado_ los días:"
    return "\n".join([header, *_change_lines(changes)]) + "\n"


def compose_aggregate_message(groups) -> str:
    """One message covering several employees; ``groups`` is [(name, changes), ...]."""
    parts = ["Se *Autorizan* los siguientes cambios de turno:"]
    for name, changes in groups:
        parts.append("")
        parts.append(f"*{name}*")
        parts.extend(_change_lines(changes))
    return "\n".join(parts) + "\n"


# ---------- transports ----------

class WhatsAppTransport:
    """Posts to the WhatsApp relay microservice."""

    def __init__(self, url: str, timeout: float = 30, country_prefix: str = "56", session=None):
        self.url = url
        self.timeout = timeout
        self.country_prefix = country_prefix or ""
        self.http = session or requests.Session()

    def send(self, phone: str, message: str):
        numero = f"{self.country_prefix}{phone}"
        try:
            resp = self.http.post(
                self.url,
                json={"mensaje": message, "numero": numero},
                timeout=self.timeout,
            )
        except requests.RequestException as ex:
            raise NotificationError(f"WhatsApp relay unreachable: {ex}", recipient=phone) from ex
        if not resp.ok:
            raise NotificationError(
                f"WhatsApp relay answered {resp.status_code}: {_short(resp.text, 200)}",
                recipient=phone,
                status=resp.status_code,
            )
        return resp.status_code


class RecordingTransport:
    """Keeps messages in memory (tests, dry runs)."""

    def __init__(self):
        self.sent = []

    def send(self, phone: str, message: str):
        self.sent.append((phone, message))
        return 200


# ---------- queue ----------

class NotificationQueue:
    """DB-backed outbox over ``notification_jobs``."""

    def __init__(self, max_attempts: int = 3, backoff_seconds: int = 30, session=None):
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.session = session or db.session

    def enqueue(self, recipient: str, message: str, employee_id=None, now=None) -> NotificationJob:
        job = NotificationJob(
            recipient=recipient,
            message=message,
            employee_id=employee_id,
            status=JOB_PENDING,
            attempts=0,
            max_attempts=self.max_attempts,
            next_attempt_at=now or datetime.utcnow(),
        )
        self.session.add(job)
        self.session.commit()
        log.info("Queued WhatsApp message #%s for %s: %s", job.id, recipient, _short(message))
        return job

    def due_jobs(self, now=None, limit: int = 50) -> List[NotificationJob]:
        now = now or datetime.utcnow()
        return (
            self.session.query(NotificationJob)
            .filter(
                NotificationJob.status.in_((JOB_PENDING, JOB_RETRYING)),
                NotificationJob.next_attempt_at <= now,
            )
            .order_by(NotificationJob.next_attempt_at.asc(), NotificationJob.id.asc())
            .limit(limit)
            .all()
        )

    def backoff_for(self, attempts: int) -> timedelta:
        return timedelta(seconds=self.backoff_seconds * (2 ** max(attempts - 1, 0)))

    def claim(self, job: NotificationJob, now=None) -> bool:
        """
        Take the job for one attempt. Several workers may hold the same row; only
        the one whose conditional UPDATE still finds it due, unsent and at the
        attempt count it read wins. The lease moves ``next_attempt_at`` past
        ``now``, keeping the job out of ``due_jobs`` and out of other claims while
        it is being sent, and lets it come back if the sender dies mid-attempt.
        """
        now = now or datetime.utcnow()
        seen = job.attempts or 0
        claimed = (
            self.session.query(NotificationJob)
            .filter(
                NotificationJob.id == job.id,
                NotificationJob.status.in_((JOB_PENDING, JOB_RETRYING)),
                NotificationJob.attempts == seen,
                NotificationJob.next_attempt_at <= now,
            )
            .update(
                {
                    NotificationJob.attempts: NotificationJob.attempts + 1,
                    NotificationJob.next_attempt_at: now + CLAIM_LEASE,
                },
                synchronize_session=False,
            )
        )
        self.session.commit()
        return claimed == 1

    def attempt(self, job: NotificationJob, transport, now=None) -> NotificationJob:
        """Run one delivery attempt and move the job along its state machine."""
        if job.is_terminal:
            return job
        now = now or datetime.utcnow()
        if not self.claim(job, now=now):
            log.info("WhatsApp message #%s already taken by another worker, skipping", job.id)
            return job
        try:
            transport.send(job.recipient, job.message)
        except NotificationError as ex:
            job.last_error = str(ex)
            if job.attempts >= job.max_attempts:
                job.status = JOB_FAILED
                job.failed_at = now
                log.error(
                    "WhatsApp message #%s to %s failed permanently after %d attempt(s): %s | %s",
                    job.id, job.recipient, job.attempts, ex, _short(job.message),
                )
            else:
                job.status = JOB_RETRYING
                job.next_attempt_at = now + self.backoff_for(job.attempts)
                log.warning(
                    "WhatsApp message #%s to %s failed (attempt %d/%d), retry at %s: %s | %s",
                    job.id, job.recipient, job.attempts, job.max_attempts,
                    job.next_attempt_at.isoformat(), ex, _short(job.message),
                )
        else:
            job.status = JOB_SENT
            job.sent_at = now
            job.last_error = None
            log.info("WhatsApp message #%s sent to %s (attempt %d)", job.id, job.recipient, job.attempts)
        self.session.commit()
        return job

    def process_due(self, transport, now=None, limit: int = 50) -> List[NotificationJob]:
        return [self.attempt(job, transport, now=now) for job in self.due_jobs(now=now, limit=limit)]

    def retry_failed(self, job: NotificationJob) -> NotificationJob:
        """Failed is terminal; a manual retry queues a fresh job with the same payload."""
        if job.status != JOB_FAILED:
            raise ValueError("only failed jobs can be retried")
        return self.enqueue(job.recipient, job.message, employee_id=job.employee_id)


# ---------- dispatcher ----------

class NotificationDispatcher:

    def __init__(self, config: NotificationConfig, queue: NotificationQueue | None = None, wake=None):
        self.config = config
        self.queue = queue or NotificationQueue(config.max_attempts, config.backoff_seconds)
        self._wake = wake

    compose_message = staticmethod(compose_message)

    def resolve_recipients(self, employee_phone: str | None = None) -> List[str]:
        phones = list(self.config.recipients.values())
        if self.config.employee_copy and employee_phone:
            phones.append(employee_phone)
        # keep order, drop blanks and repeats
        return [p for p in OrderedDict.fromkeys(str(p).strip() for p in phones) if p]

    def dispatch(self, recipient_phone: str, message: str, employee_id=None) -> NotificationJob:
        """Queue one message; delivery happens on the worker."""
        job = self.queue.enqueue(recipient_phone, message, employee_id=employee_id)
        if self._wake is not None:
            self._wake()
        return job

    def notify_changes(self, changes: Iterable) -> List[NotificationJob]:
        """
        Classify, group per employee and queue messages for a committed batch.
        Returns the queued jobs; never raises for queueing problems.
        """
        notifiable = filter_notifiable(changes, self.config)
        if not notifiable:
            log.info("No notifiable shift changes in batch")
            return []

        groups: "OrderedDict[int, list]" = OrderedDict()
        for c in notifiable:
            groups.setdefault(c.employee_id, []).append(c)

        jobs: List[NotificationJob] = []
        try:
            if self.config.aggregate:
                message = compose_aggregate_message(
                    [(items[0].employee_name, items) for items in groups.values()]
                )
                for phone in self.resolve_recipients():
                    jobs.append(self.dispatch(phone, message))
                if self.config.employee_copy:
                    for eid, items in groups.items():
                        own = self._employee_phone(eid)
                        if own:
                            jobs.append(self.dispatch(own, compose_message(items[0].employee_name, items), employee_id=eid))
            else:
                for eid, items in groups.items():
                    message = compose_message(items[0].employee_name, items)
                    for phone in self.resolve_recipients(self._employee_phone(eid)):
                        jobs.append(self.dispatch(phone, message, employee_id=eid))
        except SQLAlchemyError as ex:
            self.queue.session.rollback()
            log.error("Could not queue shift change notifications (%d queued before failure): %s", len(jobs), ex)
        return jobs

    def _employee_phone(self, employee_id) -> Optional[str]:
        if not self.config.employee_copy:
            return None
        emp = db.session.get(Employee, employee_id)
        if emp is None:
            return None
        return (emp.phone or "").strip() or None


# ---------- worker ----------

class NotificationWorker(threading.Thread):
    """Daemon thread draining the queue inside an app context."""

    def __init__(self, app, transport, poll_seconds: float = 5.0):
        super().__init__(name="notification-worker", daemon=True)
        self.app = app
        self.transport = transport
        self.poll_seconds = poll_seconds
        self._wake = threading.Event()
        self._stopping = threading.Event()

    def wake(self):
        self._wake.set()

    def stop(self):
        self._stopping.set()
        self._wake.set()

    def run(self):
        log.info("Notification worker started (poll every %ss)", self.poll_seconds)
        while not self._stopping.is_set():
            with self.app.app_context():
                try:
                    cfg = self.app.extensions["notify_config"]
                    NotificationQueue(cfg.max_attempts, cfg.backoff_seconds).process_due(self.transport)
                except SQLAlchemyError as ex:
                    db.session.rollback()
                    log.error("Notification worker pass failed: %s", ex)
                finally:
                    db.session.remove()
            self._wake.wait(self.poll_seconds)
            self._wake.clear()
