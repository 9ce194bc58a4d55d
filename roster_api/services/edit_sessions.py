# roster_api/services/edit_sessions.py
from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Optional

from roster_api.services.change_tracker import ChangeTracker

log = logging.getLogger(__name__)


@dataclass
class EditSession:
    id: str
    user_id: Optional[int]
    tracker: ChangeTracker
    created_at: datetime = field(default_factory=datetime.utcnow)
    touched_at: datetime = field(default_factory=datetime.utcnow)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def to_dict(self):
        grid = self.tracker.grid
        return {
            "id": self.id,
            "year": grid.year,
            "month": grid.month,
            "department_id": grid.department_id,
            "created_at": self.created_at.isoformat(),
            "pending": [c.to_dict() for c in self.tracker.changes],
        }


class EditSessionRegistry:
    """
    In-process store of open editing sessions.

    Sessions are not persisted: closing the tab, restarting the process or
    letting the TTL lapse discards the pending edits.
    """

    def __init__(self, ttl_minutes: int = 240):
        self.ttl = timedelta(minutes=ttl_minutes)
        self._sessions: Dict[str, EditSession] = {}
        self._lock = threading.Lock()

    def open(self, tracker: ChangeTracker, user_id=None) -> EditSession:
        s = EditSession(id=uuid.uuid4().hex, user_id=user_id, tracker=tracker)
        with self._lock:
            self._purge_expired()
            self._sessions[s.id] = s
        log.info("Opened edit session %s for user %s (%d-%02d)", s.id, user_id, tracker.grid.year, tracker.grid.month)
        return s

    def get(self, sid: str, user_id=None) -> Optional[EditSession]:
        with self._lock:
            self._purge_expired()
            s = self._sessions.get(sid)
            if s is None or (s.user_id is not None and user_id is not None and s.user_id != user_id):
                return None
            s.touched_at = datetime.utcnow()
            return s

    def discard(self, sid: str) -> bool:
        with self._lock:
            return self._sessions.pop(sid, None) is not None

    def __len__(self):
        return len(self._sessions)

    def _purge_expired(self):
        cutoff = datetime.utcnow() - self.ttl
        for sid in [k for k, s in self._sessions.items() if s.touched_at < cutoff]:
            dropped = self._sessions.pop(sid)
            log.info("Edit session %s expired with %d pending change(s)", sid, len(dropped.tracker))
