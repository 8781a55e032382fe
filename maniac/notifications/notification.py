"""
Notifications and notifiable entities.

A notification says which channels it goes through (``via``) and how it
looks on each of them (``to_mail``, ``to_database``).
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from maniac.core.exceptions import ManiacError

if TYPE_CHECKING:
    from maniac.mail.mailable import Mailable
    from maniac.notifications.sender import NotificationSender


class NotificationError(ManiacError):
    """A notification could not be delivered through a channel."""


class Notification(ABC):
    """
    Base class for notifications.

    Example:
        class InvoicePaid(Notification):
            def __init__(self, invoice):
                self.invoice = invoice

            def via(self, notifiable):
                return ["database", "mail"]

            def to_mail(self, notifiable):
                return (
                    MailMessage()
                    .subject(f"Invoice #{self.invoice.id} paid")
                    .line("Thanks for your payment.")
                )

            def to_database(self, notifiable):
                return {"invoice_id": self.invoice.id}
    """

    _id: Optional[str] = None

    @property
    def id(self) -> str:
        """UUID4 identifying this notification, generated on first access."""
        if self._id is None:
            self._id = str(uuid.uuid4())
        return self._id

    @abstractmethod
    def via(self, notifiable: Any) -> List[str]:
        """Channel names this notification is sent through."""

    def to_mail(self, notifiable: Any) -> Optional["Mailable"]:
        return None

    def to_database(self, notifiable: Any) -> Dict[str, Any]:
        return self.to_dict(notifiable)

    def to_dict(self, notifiable: Any) -> Dict[str, Any]:
        return {}


class Notifiable:
    """
    Mixin for entities that receive notifications.

    The sender is bound once with ``Notifiable.use_sender(sender)``; the
    application does this when it boots.
    """

    _notification_sender: Optional["NotificationSender"] = None

    @classmethod
    def use_sender(cls, sender: Optional["NotificationSender"]) -> None:
        Notifiable._notification_sender = sender

    def _sender(self) -> "NotificationSender":
        if Notifiable._notification_sender is None:
            raise NotificationError("No notification sender is bound; call Notifiable.use_sender() first.")
        return Notifiable._notification_sender

    async def notify(self, notification: Notification) -> None:
        await self._sender().send(self, notification)

    async def notify_now(self, notification: Notification) -> None:
        await self._sender().send_now(self, notification)

    def route_notification_for(self, channel: str, notification: Optional[Notification] = None) -> Any:
        """Where a channel should deliver to; the ``email`` attribute for mail."""
        if channel == "mail":
            return getattr(self, "email", None)
        return None
