"""
Maniac Mail
===========

Mailables, the mailer and its transports.
"""

from maniac.mail.exceptions import MailableError, MailError
from maniac.mail.mailable import Address, Attachment, Mailable, MailMessage, ShouldQueue, normalize_addresses
from maniac.mail.mailer import Mailer, PendingMail, html_to_text
from maniac.mail.transports import ArrayTransport, LogTransport, SmtpTransport, Transport, create_transport

__all__ = [
    "Address",
    "ArrayTransport",
    "Attachment",
    "LogTransport",
    "Mailable",
    "MailableError",
    "MailMessage",
    "MailError",
    "Mailer",
    "PendingMail",
    "ShouldQueue",
    "SmtpTransport",
    "Transport",
    "create_transport",
    "html_to_text",
    "normalize_addresses",
]
