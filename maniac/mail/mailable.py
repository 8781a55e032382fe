"""
Maniac Mailables
================

A mailable describes one email: who receives it, what it says and what
is attached. Subclasses fill it in from ``build()``, which the mailer
calls right before sending.

Features:
- Fluent recipients (``to``, ``cc``, ``bcc``, ``reply_to``, ``from_``)
- Content from a Niac view, a Markdown view or content components
- Optional plain-text view
- File and in-memory attachments

Example:
    class WelcomeEmail(Mailable):
        def __init__(self, user):
            super().__init__()
            self.user = user

        def build(self):
            return (
                self.subject("Welcome!")
                .markdown("mail::welcome", {"user": self.user})
            )

    await mailer.to(user.email).send(WelcomeEmail(user))
"""

from __future__ import annotations

import mimetypes
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.utils import formataddr
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from maniac.mail.exceptions import MailableError


@dataclass(frozen=True)
class Address:
    """An email address with an optional display name."""

    address: str
    name: str = ""

    def __str__(self) -> str:
        if self.name:
            return formataddr((self.name, self.address))
        return self.address


AddressInput = Union[str, Address, Sequence[Union[str, Address]], Mapping[str, str]]


def normalize_addresses(address: AddressInput, name: Optional[str] = None) -> List[Address]:
    """
    Turn the accepted recipient shapes into a list of ``Address``.

    A mapping is read as ``{address: name}``; a sequence may mix plain
    strings and ``Address`` objects.
    """
    if isinstance(address, Address):
        return [address]
    if isinstance(address, str):
        return [Address(address, name or "")]
    if isinstance(address, Mapping):
        return [Address(key, value or "") for key, value in address.items()]

    addresses: List[Address] = []
    for item in address:
        addresses.extend(normalize_addresses(item))
    return addresses


@dataclass
class Attachment:
    """A file attached from disk (``path``) or from memory (``data``)."""

    filename: str
    mime: str = "application/octet-stream"
    path: Optional[str] = None
    data: Optional[bytes] = None

    @classmethod
    def from_path(cls, path: Union[str, Path], name: Optional[str] = None, mime: Optional[str] = None) -> "Attachment":
        path = Path(path)
        guessed, _ = mimetypes.guess_type(path.name)
        return cls(
            filename=name or path.name,
            mime=mime or guessed or "application/octet-stream",
            path=str(path),
        )


class ShouldQueue:
    """Marker base for mailables that should go through ``Mailer.queue``."""


class Mailable(ABC):
    """Base class for application emails."""

    def __init__(self) -> None:
        self.from_address: Optional[Address] = None
        self.to_addresses: List[Address] = []
        self.cc_addresses: List[Address] = []
        self.bcc_addresses: List[Address] = []
        self.reply_to_addresses: List[Address] = []
        self.subject_line: Optional[str] = None
        self.view_name: Optional[str] = None
        self.markdown_view: Optional[str] = None
        self.text_view: Optional[str] = None
        self.view_data: Dict[str, Any] = {}
        self.attachments: List[Attachment] = []
        self.components: List[Dict[str, Any]] = []
        self._built = False

    @abstractmethod
    def build(self) -> Any:
        """Configure subject, content and attachments."""

    def prepare(self) -> "Mailable":
        """Run ``build()`` once."""
        if not self._built:
            self.build()
            self._built = True
        return self

    # ------------------------------------------------------------------
    # Envelope
    # ------------------------------------------------------------------

    def from_(self, address: Union[str, Address], name: Optional[str] = None) -> "Mailable":
        self.from_address = normalize_addresses(address, name)[0]
        return self

    def to(self, address: AddressInput, name: Optional[str] = None) -> "Mailable":
        self.to_addresses.extend(normalize_addresses(address, name))
        return self

    def cc(self, address: AddressInput, name: Optional[str] = None) -> "Mailable":
        self.cc_addresses.extend(normalize_addresses(address, name))
        return self

    def bcc(self, address: AddressInput, name: Optional[str] = None) -> "Mailable":
        self.bcc_addresses.extend(normalize_addresses(address, name))
        return self

    def reply_to(self, address: AddressInput, name: Optional[str] = None) -> "Mailable":
        self.reply_to_addresses.extend(normalize_addresses(address, name))
        return self

    def subject(self, subject: str) -> "Mailable":
        self.subject_line = subject
        return self

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def view(self, view: str, data: Optional[Dict[str, Any]] = None) -> "Mailable":
        """Render the HTML body from a Niac view."""
        if self.components:
            raise MailableError("Cannot use view() when content components (e.g., greeting, line) are used.")
        self.view_name = view
        self.view_data.update(data or {})
        return self

    def markdown(self, view: str, data: Optional[Dict[str, Any]] = None) -> "Mailable":
        """Render the HTML body from a Niac view written in Markdown."""
        if self.components:
            raise MailableError("Cannot use markdown() when content components (e.g., greeting, line) are used.")
        self.markdown_view = view
        self.view_data.update(data or {})
        return self

    def text(self, view: str, data: Optional[Dict[str, Any]] = None) -> "Mailable":
        """Render the plain-text body from a Niac view."""
        self.text_view = view
        self.view_data.update(data or {})
        return self

    def with_(self, key: Union[str, Dict[str, Any]], value: Any = None) -> "Mailable":
        if isinstance(key, dict):
            self.view_data.update(key)
        else:
            self.view_data[key] = value
        return self

    def attach(self, path: Union[str, Path], name: Optional[str] = None, mime: Optional[str] = None) -> "Mailable":
        self.attachments.append(Attachment.from_path(path, name, mime))
        return self

    def attach_data(self, data: Union[str, bytes], name: str, mime: Optional[str] = None) -> "Mailable":
        if isinstance(data, str):
            data = data.encode("utf-8")
        self.attachments.append(Attachment(filename=name, mime=mime or "application/octet-stream", data=data))
        return self

    # ------------------------------------------------------------------
    # Content components
    # ------------------------------------------------------------------

    def _component(self, type_: str, value: Any) -> "Mailable":
        if self.view_name or self.markdown_view:
            raise MailableError(f"Cannot use {type_}() when a view or markdown view is set.")
        self.components.append({"type": type_, "value": value})
        return self

    def greeting(self, greeting: str) -> "Mailable":
        return self._component("greeting", greeting)

    def line(self, text: str) -> "Mailable":
        return self._component("line", text)

    def action(self, text: str, url: str) -> "Mailable":
        return self._component("action", {"text": text, "url": url})

    def panel(self, content: str) -> "Mailable":
        return self._component("panel", content)

    def table(self, rows: Sequence[Mapping[str, Any]], columns: Optional[Sequence[str]] = None) -> "Mailable":
        return self._component("table", {"data": list(rows), "columns": list(columns or [])})

    def signature(self, signature: str) -> "Mailable":
        return self._component("signature", signature)

    def footer(self, footer: str) -> "Mailable":
        return self._component("footer", footer)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject": self.subject_line,
            "to": [str(a) for a in self.to_addresses],
            "cc": [str(a) for a in self.cc_addresses],
            "bcc": [str(a) for a in self.bcc_addresses],
            "reply_to": [str(a) for a in self.reply_to_addresses],
            "from": str(self.from_address) if self.from_address else None,
            "components": list(self.components),
            "data": dict(self.view_data),
        }


class MailMessage(Mailable):
    """A mailable configured inline, e.g. from ``Notification.to_mail``."""

    def build(self) -> "MailMessage":
        return self
