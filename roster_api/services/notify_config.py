# roster_api/services/notify_config.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from roster_api.services.shift_codes import DEFAULT_NON_NOTIFIABLE


def parse_recipients(raw) -> dict[str, str]:
    """
    Accepts a mapping or the env form ``"central=964949887,supervisor-x=981841759"``.
    Blank phones are dropped.
    """
    if not raw:
        return {}
    if isinstance(raw, Mapping):
        items = raw.items()
    else:
        items = []
        for part in str(raw).split(","):
            if "=" not in part:
                continue
            role, phone = part.split("=", 1)
            items.append((role, phone))
    out = {}
    for role, phone in items:
        role = str(role).strip()
        phone = str(phone or "").strip()
        if role and phone:
            out[role] = phone
    return out


def _as_bool(v) -> bool:
    if isinstance(v, bool):
        return v
    return str(v).strip().lower() in ("1", "true", "yes", "on")


def _as_labels(v) -> frozenset[str]:
    if isinstance(v, str):
        v = [p for p in v.split(",")]
    return frozenset(str(p).strip() for p in v if str(p).strip())


@dataclass(frozen=True)
class NotificationConfig:
    """
    Everything the classifier and dispatcher need, built once from app.config.
    Services take this object explicitly and never read the environment.
    """
    recipients: Mapping[str, str] = field(default_factory=dict)
    non_notifiable: frozenset = frozenset(DEFAULT_NON_NOTIFIABLE)
    employee_copy: bool = False
    aggregate: bool = False
    country_prefix: str = "56"
    max_attempts: int = 3
    backoff_seconds: int = 30

    @classmethod
    def from_app_config(cls, config: Mapping) -> "NotificationConfig":
        return cls(
            recipients=parse_recipients(config.get("NOTIFY_RECIPIENTS")),
            non_notifiable=_as_labels(config.get("NOTIFY_NON_NOTIFIABLE", DEFAULT_NON_NOTIFIABLE)),
            employee_copy=_as_bool(config.get("NOTIFY_EMPLOYEE_COPY", False)),
            aggregate=_as_bool(config.get("NOTIFY_AGGREGATE", False)),
            country_prefix=str(config.get("NOTIFY_COUNTRY_PREFIX", "56") or ""),
            max_attempts=max(int(config.get("NOTIFY_MAX_ATTEMPTS", 3)), 1),
            backoff_seconds=max(int(config.get("NOTIFY_BACKOFF_SECONDS", 30)), 0),
        )
