# roster_api/services/change_classifier.py
"""
Decides which committed changes are worth a message to supervisors.

Both sides are compared by their display label, so "" and any unknown code
fall into the non-notifiable placeholders ("Sin Turno", "Desconocido").
"""
from __future__ import annotations

from typing import Iterable, List

from roster_api.services.notify_config import NotificationConfig
from roster_api.services.shift_codes import describe


def is_notifiable(old_value, new_value, config: NotificationConfig) -> bool:
    placeholders = config.non_notifiable
    old_label = describe(old_value)
    new_label = describe(new_value)

    if old_label in placeholders and new_label in placeholders:
        return False
    # a cleared / unassigned shift is not reported
    if new_label in placeholders:
        return False
    return True


def filter_notifiable(changes: Iterable, config: NotificationConfig) -> List:
    """Keep the changes (anything with old_value/new_value) that warrant a notification."""
    return [c for c in changes if is_notifiable(c.old_value, c.new_value, config)]
