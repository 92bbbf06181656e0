# Overview: Fire-and-forget notification sink used by the engines.

"""
Notifications are published AFTER the unit of work they describe has
committed (or rolled back, for failure notices). A sink failure is logged
and swallowed: it never turns a successful operation into a failed one.

Sinks implement publish(type, message, timestamp). The default sink writes
to the notifications table on its own connection; tests and deployments
can inject another through app.config["NOTIFICATION_SINK"].
"""

from __future__ import annotations

import logging
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Notification
from ..time_utils import utcnow

logger = logging.getLogger(__name__)


class DatabaseNotificationSink:
    """Persist notifications outside the caller's session."""

    def publish(self, type: str, message: str, timestamp: datetime) -> None:
        with db.engine.begin() as conn:
            conn.execute(
                Notification.__table__.insert().values(
                    type=type,
                    message=message,
                    created_at=timestamp,
                    is_read=False,
                )
            )


class RecordingNotificationSink:
    """In-memory sink; keeps every published notification in order."""

    def __init__(self):
        self.published: list[dict] = []

    def publish(self, type: str, message: str, timestamp: datetime) -> None:
        self.published.append({"type": type, "message": message, "timestamp": timestamp})

    def types(self) -> list[str]:
        return [n["type"] for n in self.published]


def get_sink():
    sink = current_app.config.get("NOTIFICATION_SINK")
    if sink is None:
        sink = DatabaseNotificationSink()
    return sink


def notify(type: str, message: str) -> None:
    """Publish a notification; never raises."""
    try:
        get_sink().publish(type, message, utcnow())
    except Exception:
        logger.exception("Notification sink failed; dropping %s notification: %s", type, message)


def list_notifications(unread_only: bool = False) -> list[Notification]:
    q = db.session.query(Notification)
    if unread_only:
        q = q.filter_by(is_read=False)
    return q.order_by(Notification.created_at.desc(), Notification.id.desc()).all()


def mark_notification_read(notification_id: int) -> None:
    notification = db.session.get(Notification, notification_id)
    if notification is not None:
        notification.is_read = True
        db.session.commit()


def mark_all_notifications_read() -> int:
    updated = (
        db.session.query(Notification)
        .filter_by(is_read=False)
        .update({Notification.is_read: True}, synchronize_session=False)
    )
    db.session.commit()
    return updated
