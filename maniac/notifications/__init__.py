"""
Maniac Notifications
====================

Notifications delivered through mail and database channels.
"""

from maniac.notifications.channels import Channel, DatabaseChannel, MailChannel
from maniac.notifications.notification import Notifiable, Notification, NotificationError
from maniac.notifications.sender import NotificationSender

__all__ = [
    "Channel",
    "DatabaseChannel",
    "MailChannel",
    "Notifiable",
    "Notification",
    "NotificationError",
    "NotificationSender",
]
