"""
Maniac Mailer
=============

Builds messages from mailables, renders their views and hands them to
the configured transport.

Features:
- Named mailers from ``mail.mailers`` with lazily created transports
- HTML from Niac views, Markdown views (themed) or content components
- Plain-text part from a text view or derived from the HTML
- Global ``from`` address
- ``mailer.to(...).send(mailable)`` fluent sending

Example:
    mailer = Mailer(config.section("mail"), views)
    await mailer.to("jane@example.com").send(WelcomeEmail(user))
"""

from __future__ import annotations

import html
import re
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formatdate, make_msgid
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple

import aiofiles
import bleach
import markdown

from maniac.mail.exceptions import MailError
from maniac.mail.mailable import Address, AddressInput, Attachment, Mailable, ShouldQueue, normalize_addresses
from maniac.mail.transports import Transport, create_transport
from maniac.utils.logger import get_logger
from maniac.view.helpers import HtmlString, escape

if TYPE_CHECKING:
    from maniac.view.engine import NiacEngine


MARKDOWN_TAGS = frozenset({
    "a", "abbr", "b", "blockquote", "br", "code", "del", "em", "h1", "h2",
    "h3", "h4", "h5", "h6", "hr", "i", "img", "li", "ol", "p", "pre",
    "strong", "table", "tbody", "td", "th", "thead", "tr", "ul",
})

MARKDOWN_ATTRIBUTES = {
    "a": ["href", "title"],
    "img": ["src", "alt", "title"],
    "th": ["align"],
    "td": ["align"],
}

COMPONENT_LAYOUT = """<!DOCTYPE html>
<html>
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>%(title)s</title>
<style>
body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; background: #f4f4f4; margin: 0; }
.container { max-width: 600px; margin: 20px auto; background: #fff; padding: 20px; border-radius: 8px; }
.action { text-align: center; margin: 20px 0; }
.action a { display: inline-block; padding: 10px 20px; background: #007bff; color: #fff; text-decoration: none; border-radius: 5px; }
.panel { background: #f8f9fa; border-left: 4px solid #007bff; padding: 10px 15px; }
.footer { color: #888; font-size: 12px; text-align: center; }
table { width: 100%%; border-collapse: collapse; }
th, td { border: 1px solid #ddd; padding: 6px; text-align: left; }
</style>
</head>
<body>
<div class="container">
%(body)s
</div>
</body>
</html>
"""

_STYLE_RE = re.compile(r"<style.*?>.*?</style>", re.IGNORECASE | re.DOTALL)
_BLANK_LINES_RE = re.compile(r"\n\s*\n+")


def html_to_text(content: str) -> str:
    """Plain-text version of an HTML body: styles removed, tags stripped."""
    content = _STYLE_RE.sub("", content)
    content = bleach.clean(content, tags=set(), strip=True)
    lines = (line.strip() for line in html.unescape(content).splitlines())
    return _BLANK_LINES_RE.sub("\n\n", "\n".join(lines)).strip()


class PendingMail:
    """Recipients collected before a mailable is chosen."""

    def __init__(self, mailer: "Mailer") -> None:
        self.mailer = mailer
        self._to: List[Address] = []
        self._cc: List[Address] = []
        self._bcc: List[Address] = []
        self._reply_to: List[Address] = []

    def to(self, address: AddressInput, name: Optional[str] = None) -> "PendingMail":
        self._to.extend(normalize_addresses(address, name))
        return self

    def cc(self, address: AddressInput, name: Optional[str] = None) -> "PendingMail":
        self._cc.extend(normalize_addresses(address, name))
        return self

    def bcc(self, address: AddressInput, name: Optional[str] = None) -> "PendingMail":
        self._bcc.extend(normalize_addresses(address, name))
        return self

    def reply_to(self, address: AddressInput, name: Optional[str] = None) -> "PendingMail":
        self._reply_to.extend(normalize_addresses(address, name))
        return self

    def _fill(self, mailable: Mailable) -> Mailable:
        mailable.to_addresses.extend(self._to)
        mailable.cc_addresses.extend(self._cc)
        mailable.bcc_addresses.extend(self._bcc)
        mailable.reply_to_addresses.extend(self._reply_to)
        return mailable

    async def send(self, mailable: Mailable, mailer: Optional[str] = None) -> None:
        await self.mailer.send(self._fill(mailable), mailer)

    async def send_now(self, mailable: Mailable, mailer: Optional[str] = None) -> MIMEMultipart:
        return await self.mailer.send_now(self._fill(mailable), mailer)

    async def queue(self, mailable: Mailable, mailer: Optional[str] = None) -> None:
        await self.mailer.queue(self._fill(mailable), mailer)


class Mailer:
    """
    Sends mailables through named transports.

    Args:
        config: The ``mail`` configuration section
        views: View engine used for view and Markdown content
    """

    def __init__(self, config: Mapping[str, Any], views: Optional["NiacEngine"] = None):
        self.config: Dict[str, Any] = dict(config)
        self.views = views
        self.default: str = self.config.get("default") or "log"
        self.logger = get_logger("maniac.mail")
        self._transports: Dict[str, Transport] = {}

        sender = self.config.get("from") or {}
        self.from_address: Optional[Address] = (
            Address(sender["address"], sender.get("name") or "") if sender.get("address") else None
        )

    # ------------------------------------------------------------------
    # Transports
    # ------------------------------------------------------------------

    def transport(self, name: Optional[str] = None) -> Transport:
        """
        Get the transport of a named mailer, creating it on first use.

        Raises:
            MailError: The mailer is not configured
        """
        name = name or self.default
        if name not in self._transports:
            mailers = self.config.get("mailers") or {}
            if name not in mailers:
                raise MailError(f"Mailer [{name}] not configured.")
            self._transports[name] = create_transport(mailers[name])
        return self._transports[name]

    def set_transport(self, name: str, transport: Transport) -> None:
        self._transports[name] = transport

    async def close(self) -> None:
        for transport in self._transports.values():
            await transport.close()

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def to(self, address: AddressInput, name: Optional[str] = None) -> PendingMail:
        return PendingMail(self).to(address, name)

    async def send(self, mailable: Mailable, mailer: Optional[str] = None) -> None:
        if isinstance(mailable, ShouldQueue):
            await self.queue(mailable, mailer)
        else:
            await self.send_now(mailable, mailer)

    async def send_now(self, mailable: Mailable, mailer: Optional[str] = None) -> MIMEMultipart:
        """
        Build and deliver a mailable immediately.

        Raises:
            MailError: Building, rendering or delivery failed
        """
        name = mailer or self.default
        try:
            message = await self.build_message(mailable)
            await self.transport(name).send(message)
        except Exception as exc:
            self.logger.error(
                f"Email sending failed: {exc}",
                exception=exc,
                mailable=type(mailable).__name__,
                mailer=name,
            )
            raise MailError(f"Failed to send email: {exc}") from exc

        self.logger.info(
            "Email sent successfully",
            mailable=type(mailable).__name__,
            mailer=name,
            to=[a.address for a in mailable.to_addresses],
        )
        return message

    async def queue(self, mailable: Mailable, mailer: Optional[str] = None) -> None:
        # No queue backend yet; deliver in-process.
        self.logger.info("Queueing mailable", mailable=type(mailable).__name__, mailer=mailer or self.default)
        await self.send_now(mailable, mailer)

    # ------------------------------------------------------------------
    # Message building
    # ------------------------------------------------------------------

    async def build_message(self, mailable: Mailable) -> MIMEMultipart:
        """Run the mailable's ``build()`` and assemble the MIME message."""
        mailable.prepare()
        html_body, text_body = self.render_content(mailable)

        message = MIMEMultipart("mixed")
        sender = mailable.from_address or self.from_address
        if sender:
            message["From"] = str(sender)
        if mailable.to_addresses:
            message["To"] = ", ".join(str(a) for a in mailable.to_addresses)
        if mailable.cc_addresses:
            message["Cc"] = ", ".join(str(a) for a in mailable.cc_addresses)
        if mailable.bcc_addresses:
            message["Bcc"] = ", ".join(str(a) for a in mailable.bcc_addresses)
        if mailable.reply_to_addresses:
            message["Reply-To"] = ", ".join(str(a) for a in mailable.reply_to_addresses)
        if mailable.subject_line:
            message["Subject"] = mailable.subject_line
        message["Date"] = formatdate(localtime=True)
        message["Message-ID"] = make_msgid(domain=self._domain(sender))

        if html_body and text_body:
            alternative = MIMEMultipart("alternative")
            alternative.attach(MIMEText(text_body, "plain", "utf-8"))
            alternative.attach(MIMEText(html_body, "html", "utf-8"))
            message.attach(alternative)
        elif html_body:
            message.attach(MIMEText(html_body, "html", "utf-8"))
        elif text_body:
            message.attach(MIMEText(text_body, "plain", "utf-8"))

        for attachment in mailable.attachments:
            message.attach(await self._attachment_part(attachment))

        return message

    @staticmethod
    def _domain(sender: Optional[Address]) -> str:
        if sender and "@" in sender.address:
            return sender.address.rsplit("@", 1)[1]
        return "localhost"

    @staticmethod
    async def _attachment_part(attachment: Attachment) -> MIMEBase:
        data = attachment.data
        if data is None:
            async with aiofiles.open(attachment.path, "rb") as f:
                data = await f.read()

        maintype, _, subtype = attachment.mime.partition("/")
        part = MIMEBase(maintype, subtype or "octet-stream")
        part.set_payload(data)
        encoders.encode_base64(part)
        part.add_header("Content-Disposition", "attachment", filename=attachment.filename)
        return part

    def render_content(self, mailable: Mailable) -> Tuple[Optional[str], Optional[str]]:
        """Render the ``(html, text)`` bodies of a mailable."""
        html_body: Optional[str] = None
        text_body: Optional[str] = None

        if mailable.components:
            html_body = self.render_components(mailable)
            if not mailable.text_view:
                text_body = self.render_components_text(mailable)
        elif mailable.markdown_view:
            html_body = self.render_markdown(mailable.markdown_view, mailable.view_data)
            if not mailable.text_view:
                text_body = html_to_text(html_body)
        elif mailable.view_name:
            html_body = self.render_view(mailable.view_name, mailable.view_data)

        if mailable.text_view:
            text_body = self.render_view(mailable.text_view, mailable.view_data)

        return html_body, text_body

    def render_view(self, view: str, data: Mapping[str, Any]) -> str:
        """
        Render a Niac view with the mailer and mail config available.

        Raises:
            MailError: No view engine, or the view failed
        """
        if self.views is None:
            raise MailError(f"Error rendering email view [{view}]: no view engine configured")
        try:
            return self.views.render(view, {**data, "mailer": self, "config": self.config})
        except Exception as exc:
            self.logger.error("Niac mail view rendering failed", exception=exc, view=view)
            raise MailError(f"Error rendering email view [{view}]: {exc}") from exc

    def render_markdown(self, view: str, data: Mapping[str, Any]) -> str:
        """Render a Markdown view to HTML and wrap it in the mail theme."""
        source = self.render_view(view, data)
        body = markdown.markdown(source, extensions=["tables", "fenced_code", "sane_lists"])
        body = bleach.clean(
            body,
            tags=MARKDOWN_TAGS,
            attributes=MARKDOWN_ATTRIBUTES,
            protocols=["http", "https", "mailto"],
            strip=True,
        )
        return self.wrap_in_theme(body, data)

    def wrap_in_theme(self, body: str, data: Mapping[str, Any], title: Optional[str] = None) -> str:
        theme = (self.config.get("markdown") or {}).get("theme") or "default"
        theme_view = f"vendor.mail.html.themes.{theme}"
        if self.views is not None and self.views.exists(theme_view):
            return self.render_view(theme_view, {**data, "body": HtmlString(body)})
        return COMPONENT_LAYOUT % {"title": escape(title or ""), "body": body}

    def render_components(self, mailable: Mailable) -> str:
        parts = [self._component_html(c["type"], c["value"]) for c in mailable.components]
        return self.wrap_in_theme("\n".join(parts), mailable.view_data, mailable.subject_line)

    @staticmethod
    def _component_html(type_: str, value: Any) -> str:
        if type_ == "greeting":
            return f"<h1>{escape(value)}</h1>"
        if type_ == "action":
            return f'<p class="action"><a href="{escape(value["url"])}">{escape(value["text"])}</a></p>'
        if type_ == "panel":
            return f'<div class="panel">{escape(value)}</div>'
        if type_ == "table":
            rows = value["data"]
            columns = value["columns"] or (list(rows[0].keys()) if rows else [])
            head = "".join(f"<th>{escape(c)}</th>" for c in columns)
            body = "".join(
                "<tr>" + "".join(f"<td>{escape(row.get(c, ''))}</td>" for c in columns) + "</tr>"
                for row in rows
            )
            return f"<table><thead><tr>{head}</tr></thead><tbody>{body}</tbody></table>"
        if type_ == "signature":
            return f'<p class="signature">{escape(value)}</p>'
        if type_ == "footer":
            return f'<p class="footer">{escape(value)}</p>'
        return f"<p>{escape(value)}</p>"

    def render_components_text(self, mailable: Mailable) -> str:
        blocks: List[str] = []
        for component in mailable.components:
            type_, value = component["type"], component["value"]
            if type_ == "action":
                blocks.append(f"{value['text']}: {value['url']}")
            elif type_ == "table":
                rows = value["data"]
                columns = value["columns"] or (list(rows[0].keys()) if rows else [])
                lines = [" | ".join(str(c) for c in columns)]
                lines.extend(" | ".join(str(row.get(c, "")) for c in columns) for row in rows)
                blocks.append("\n".join(lines))
            else:
                blocks.append(str(value))
        return "\n\n".join(blocks)
