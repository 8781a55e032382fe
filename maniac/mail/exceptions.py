"""Mail exceptions."""

from __future__ import annotations

from maniac.core.exceptions import ManiacError


class MailError(ManiacError):
    """A mailer is misconfigured, a view failed to render, or delivery failed."""


class MailableError(MailError):
    """Conflicting content modes on a mailable."""
