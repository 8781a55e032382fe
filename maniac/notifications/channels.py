"""
Notification channels.

``MailChannel`` sends ``to_mail()`` through the mailer and
``DatabaseChannel`` stores ``to_database()`` in the ``notifications``
table.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional

from maniac.mail.mailable import Address, Mailable
from maniac.notifications.notification import Notification, NotificationError

if TYPE_CHECKING:
    from maniac.mail.mailer import Mailer
    from maniac.orm.connection import Connection


class Channel(ABC):
    """Delivers notifications to one kind of destination."""

    @abstractmethod
    async def send(self, notifiable: Any, notification: Notification) -> None:
        ...


def class_path(obj: Any) -> str:
    cls = type(obj)
    return f"{cls.__module__}.{cls.__qualname__}"


class MailChannel(Channel):
    def __init__(self, mailer: "Mailer") -> None:
        self.mailer = mailer

    async def send(self, notifiable: Any, notification: Notification) -> None:
        message = notification.to_mail(notifiable)
        if not isinstance(message, Mailable):
            raise NotificationError(
                f"{type(notification).__name__}.to_mail() must return a Mailable, got {type(message).__name__}"
            )

        recipient = self.recipient(notifiable, notification)
        if not recipient:
            raise NotificationError(f"No mail recipient for {type(notifiable).__name__}")

        await self.mailer.send(message.to(recipient))

    @staticmethod
    def recipient(notifiable: Any, notification: Notification) -> Optional[Any]:
        route = getattr(notifiable, "route_notification_for", None)
        if route is not None:
            address = route("mail", notification)
            if address:
                return address
        email = getattr(notifiable, "email", None)
        if email:
            return Address(email, getattr(notifiable, "name", None) or "")
        return None


class DatabaseChannel(Channel):
    """Stores notifications as rows of the ``notifications`` table."""

    table = "notifications"

    def __init__(self, connection: "Connection") -> None:
        self.connection = connection

    async def send(self, notifiable: Any, notification: Notification) -> None:
        get_key = getattr(notifiable, "get_key", None)
        if get_key is None:
            raise NotificationError(
                f"Cannot store database notification: {type(notifiable).__name__} has no get_key()"
            )

        now = datetime.now().replace(microsecond=0)
        row: Dict[str, Any] = {
            "id": notification.id,
            "type": class_path(notification),
            "notifiable_type": class_path(notifiable),
            "notifiable_id": get_key(),
            "data": notification.to_database(notifiable),
            "read_at": None,
            "created_at": now,
            "updated_at": now,
        }
        await self.connection.table(self.table).insert(row)
