"""
Notification dispatch.

Example:
    sender = NotificationSender()
    sender.register_channel("mail", MailChannel(mailer))
    sender.register_channel("database", DatabaseChannel(db))

    await sender.send(users, InvoicePaid(invoice))
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from maniac.mail.mailable import ShouldQueue
from maniac.notifications.channels import Channel
from maniac.notifications.notification import Notification, NotificationError
from maniac.utils.logger import get_logger

ChannelFactory = Callable[[], Channel]


class NotificationSender:
    """
    Sends notifications to notifiables through named channels.

    A failing channel is logged and does not stop the remaining channels
    or notifiables.
    """

    def __init__(self, channels: Optional[Dict[str, Union[Channel, ChannelFactory]]] = None) -> None:
        self._channels: Dict[str, Union[Channel, ChannelFactory]] = dict(channels or {})
        self.logger = get_logger("maniac.notifications")

    def register_channel(self, name: str, channel: Union[Channel, ChannelFactory]) -> None:
        """Register a channel instance, or a factory called on each use."""
        self._channels[name] = channel

    def resolve_channel(self, name: str) -> Optional[Channel]:
        channel = self._channels.get(name)
        if channel is None or isinstance(channel, Channel):
            return channel

        instance = channel()
        if not isinstance(instance, Channel):
            raise NotificationError(f"Resolver for channel [{name}] did not return a Channel.")
        return instance

    @staticmethod
    def format_notifiables(notifiables: Any) -> List[Any]:
        if isinstance(notifiables, (list, tuple, set, frozenset, Iterator)):
            return list(notifiables)
        return [notifiables]

    async def send(self, notifiables: Any, notification: Notification) -> None:
        notifiables = self.format_notifiables(notifiables)
        if isinstance(notification, ShouldQueue):
            await self.queue(notifiables, notification)
        else:
            await self.send_now(notifiables, notification)

    async def send_now(self, notifiables: Any, notification: Notification) -> None:
        for notifiable in self.format_notifiables(notifiables):
            for name in notification.via(notifiable) or []:
                try:
                    channel = self.resolve_channel(name)
                    if channel is None:
                        self.logger.warning(f"Notification channel [{name}] not found or resolvable.")
                        continue
                    await channel.send(notifiable, notification)
                except Exception as exc:
                    self.logger.error(
                        f"Failed to send notification via channel [{name}]",
                        exception=exc,
                        notification=type(notification).__name__,
                        notifiable_type=type(notifiable).__name__,
                    )

    async def queue(self, notifiables: List[Any], notification: Notification) -> None:
        # No queue backend yet; deliver in-process.
        self.logger.info(
            "Queueing notification",
            notification=type(notification).__name__,
            notifiable_count=len(notifiables),
        )
        await self.send_now(notifiables, notification)
