# roster_api/services/shift_commit.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Sequence

from roster_api.common.errors import ValidationError
from roster_api.services.change_classifier import filter_notifiable
from roster_api.services.notifications import NotificationDispatcher
from roster_api.services.shift_change_log import ShiftChangeLogStore, entries_from_changes

log = logging.getLogger(__name__)


@dataclass
class CommitResult:
    log_ids: List[int] = field(default_factory=list)
    notifiable: int = 0
    queued_jobs: List[int] = field(default_factory=list)

    def to_dict(self):
        return {
            "logged": len(self.log_ids),
            "log_ids": self.log_ids,
            "notifiable": self.notifiable,
            "queued_notifications": len(self.queued_jobs),
        }


class ShiftCommitter:
    """
    persist (atomic) -> notify (best effort), in that order.

    A PersistenceError from the store propagates untouched so the caller keeps
    its pending list; anything that goes wrong while queueing notifications is
    logged and does not affect the result.
    """

    def __init__(self, store: ShiftChangeLogStore, dispatcher: NotificationDispatcher,
                 changed_by=None, comment=None):
        self.store = store
        self.dispatcher = dispatcher
        self.changed_by = changed_by
        self.comment = comment

    def __call__(self, changes: Sequence) -> CommitResult:
        changes = list(changes)
        if not changes:
            raise ValidationError("No changes to save")

        rows = self.store.append(entries_from_changes(changes, self.changed_by, self.comment))
        result = CommitResult(
            log_ids=[r.id for r in rows],
            notifiable=len(filter_notifiable(changes, self.dispatcher.config)),
        )

        try:
            jobs = self.dispatcher.notify_changes(changes)
        except Exception:
            log.exception("Notification step failed after commit of %d change(s)", len(changes))
            jobs = []
        result.queued_jobs = [j.id for j in jobs]

        log.info(
            "Shift commit by user %s: %d logged, %d notifiable, %d message(s) queued",
            self.changed_by, len(result.log_ids), result.notifiable, len(result.queued_jobs),
        )
        return result
