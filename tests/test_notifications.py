from datetime import date, datetime, timedelta
from types import SimpleNamespace

import pytest
import requests

from roster_api.common.errors import NotificationError
from roster_api.models.notification import NotificationJob
from roster_api.services.notifications import (
    NotificationDispatcher, NotificationQueue, RecordingTransport, WhatsAppTransport,
    compose_aggregate_message, compose_message,
)
from roster_api.services.notify_config import NotificationConfig

T0 = datetime(2025, 3, 1, 8, 0, 0)


def _chg(employee_id, name, day, old, new):
    return SimpleNamespace(
        employee_id=employee_id, employee_name=name, day=day,
        shift_date=date(2025, 3, day), old_value=old, new_value=new,
    )


class FailingTransport:
    def __init__(self, failures=None):
        self.failures = failures  # None = always fail
        self.calls = 0

    def send(self, phone, message):
        self.calls += 1
        if self.failures is None or self.calls <= self.failures:
            raise NotificationError("relay answered 502", recipient=phone, status=502)
        return 200


# ---------- messages ----------

def test_compose_message_lists_changes_by_date():
    msg = compose_message("Juan Pérez", [
        _chg(1, "Juan Pérez", 16, "", "N"),
        _chg(1, "Juan Pérez", 15, "M", "T"),
    ])
    lines = msg.splitlines()
    assert lines[0] == "Se *Autoriza* el turno de: *Juan Pérez* _siendo modificado_ los días:"
    assert lines[1] == '• *15/03/2025* de "*Mañana*" a "*Tarde*"'
    assert lines[2] == '• *16/03/2025* de "*Sin Turno*" a "*Noche*"'


def test_compose_aggregate_message_has_one_section_per_employee():
    msg = compose_aggregate_message([
        ("Juan Pérez", [_chg(1, "Juan Pérez", 15, "M", "T")]),
        ("María González", [_chg(2, "María González", 3, "", "LM")]),
    ])
    assert "*Juan Pérez*" in msg and "*María González*" in msg
    assert '• *03/03/2025* de "*Sin Turno*" a "*Licencia Médica*"' in msg


# ---------- queue state machine ----------

def test_job_sent_on_first_attempt(session):
    q = NotificationQueue(max_attempts=3, backoff_seconds=30)
    job = q.enqueue("964949887", "hola", now=T0)
    assert job.status == "pending"

    transport = RecordingTransport()
    done = q.process_due(transport, now=T0)
    assert [j.id for j in done] == [job.id]
    assert job.status == "sent"
    assert job.attempts == 1
    assert job.sent_at == T0
    assert transport.sent == [("964949887", "hola")]
    # sent jobs are never picked up again
    assert q.process_due(transport, now=T0 + timedelta(hours=1)) == []


def test_job_retries_then_sends(session):
    q = NotificationQueue(max_attempts=3, backoff_seconds=30)
    job = q.enqueue("964949887", "hola", now=T0)
    transport = FailingTransport(failures=1)

    q.process_due(transport, now=T0)
    assert job.status == "retrying"
    assert job.next_attempt_at == T0 + timedelta(seconds=30)
    assert "502" in job.last_error

    # not due yet
    assert q.process_due(transport, now=T0 + timedelta(seconds=10)) == []

    q.process_due(transport, now=T0 + timedelta(seconds=30))
    assert job.status == "sent"
    assert job.attempts == 2
    assert job.last_error is None


def test_job_fails_terminally_after_max_attempts(session):
    q = NotificationQueue(max_attempts=3, backoff_seconds=30)
    job = q.enqueue("964949887", "hola", now=T0)
    transport = FailingTransport()

    q.process_due(transport, now=T0)
    q.process_due(transport, now=T0 + timedelta(seconds=30))
    assert job.status == "retrying"
    # backoff doubles
    assert job.next_attempt_at == T0 + timedelta(seconds=30 + 60)

    q.process_due(transport, now=T0 + timedelta(seconds=90))
    assert job.status == "failed"
    assert job.attempts == 3
    assert job.failed_at == T0 + timedelta(seconds=90)

    # terminal: never attempted again
    assert q.process_due(transport, now=T0 + timedelta(days=1)) == []
    assert q.attempt(job, transport).status == "failed"
    assert transport.calls == 3


def test_retry_failed_creates_new_job(session):
    q = NotificationQueue(max_attempts=1, backoff_seconds=0)
    job = q.enqueue("964949887", "hola", employee_id=None, now=T0)
    q.process_due(FailingTransport(), now=T0)
    assert job.status == "failed"

    fresh = q.retry_failed(job)
    assert fresh.id != job.id
    assert fresh.status == "pending"
    assert job.status == "failed"

    with pytest.raises(ValueError):
        q.retry_failed(fresh)


# ---------- dispatcher ----------

def test_dispatcher_queues_one_message_per_employee_and_recipient(session, juan, maria):
    cfg = NotificationConfig(recipients={"central": "964949887", "sup": "981841759"})
    d = NotificationDispatcher(cfg)
    jobs = d.notify_changes([
        _chg(juan.id, "Juan Pérez", 15, "M", "T"),
        _chg(juan.id, "Juan Pérez", 16, "", "N"),
        _chg(maria.id, "María González", 2, "LM", ""),  # cleared, not reported
    ])
    assert len(jobs) == 2
    assert {j.recipient for j in jobs} == {"964949887", "981841759"}
    assert all(j.employee_id == juan.id for j in jobs)
    assert "15/03/2025" in jobs[0].message and "16/03/2025" in jobs[0].message
    assert NotificationJob.query.count() == 2


def test_dispatcher_adds_employee_phone_when_enabled(session, juan, maria):
    cfg = NotificationConfig(recipients={"central": "964949887"}, employee_copy=True)
    d = NotificationDispatcher(cfg)
    jobs = d.notify_changes([
        _chg(juan.id, "Juan Pérez", 15, "M", "T"),
        _chg(maria.id, "María González", 3, "", "N"),   # no phone on file
    ])
    assert sorted(j.recipient for j in jobs) == ["911111111", "964949887", "964949887"]


def test_dispatcher_skips_batch_without_notifiable_changes(session, juan):
    d = NotificationDispatcher(NotificationConfig(recipients={"central": "964949887"}))
    assert d.notify_changes([_chg(juan.id, "Juan Pérez", 15, "M", "")]) == []
    assert NotificationJob.query.count() == 0


def test_dispatcher_aggregate_mode(session, juan, maria):
    cfg = NotificationConfig(recipients={"central": "964949887", "sup": "981841759"}, aggregate=True)
    jobs = NotificationDispatcher(cfg).notify_changes([
        _chg(juan.id, "Juan Pérez", 15, "M", "T"),
        _chg(maria.id, "María González", 3, "", "N"),
    ])
    assert len(jobs) == 2
    assert "Juan Pérez" in jobs[0].message and "María González" in jobs[0].message


def test_dispatch_wakes_worker(session):
    woke = []
    d = NotificationDispatcher(NotificationConfig(), wake=lambda: woke.append(True))
    d.dispatch("964949887", "hola")
    assert woke == [True]


def test_resolve_recipients_dedupes():
    cfg = NotificationConfig(recipients={"a": "964949887", "b": "964949887", "c": " "}, employee_copy=True)
    d = NotificationDispatcher(cfg, queue=object())
    assert d.resolve_recipients("964949887") == ["964949887"]
    assert d.resolve_recipients("911111111") == ["964949887", "911111111"]


# ---------- transport ----------

class _FakeHTTP:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.calls = []

    def post(self, url, json=None, timeout=None):
        self.calls.append((url, json, timeout))
        if self.exc:
            raise self.exc
        return self.response


def test_whatsapp_transport_posts_prefixed_number():
    http = _FakeHTTP(SimpleNamespace(ok=True, status_code=200, text="ok"))
    t = WhatsAppTransport("http://relay/send-message", timeout=10, country_prefix="56", session=http)
    assert t.send("964949887", "hola") == 200
    assert http.calls == [("http://relay/send-message", {"mensaje": "hola", "numero": "56964949887"}, 10)]


def test_whatsapp_transport_raises_on_bad_status():
    http = _FakeHTTP(SimpleNamespace(ok=False, status_code=500, text="boom"))
    t = WhatsAppTransport("http://relay/send-message", session=http)
    with pytest.raises(NotificationError) as ei:
        t.send("964949887", "hola")
    assert ei.value.status == 500


def test_whatsapp_transport_raises_on_connection_error():
    http = _FakeHTTP(exc=requests.ConnectionError("refused"))
    t = WhatsAppTransport("http://relay/send-message", session=http)
    with pytest.raises(NotificationError):
        t.send("964949887", "hola")
