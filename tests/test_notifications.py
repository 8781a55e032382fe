"""Tests for notifications, channels and the sender."""

import orjson
import pytest

from maniac.mail import ArrayTransport, Mailer, MailMessage, ShouldQueue
from maniac.notifications import (
    Channel,
    DatabaseChannel,
    MailChannel,
    Notifiable,
    Notification,
    NotificationError,
    NotificationSender,
)


class Member(Notifiable):
    def __init__(self, id: int, email: str = "", name: str = ""):
        self.id = id
        self.email = email
        self.name = name

    def get_key(self):
        return self.id


class Guest(Notifiable):
    pass


class InvoicePaid(Notification):
    def __init__(self, amount: int, channels=("mail",)):
        self.amount = amount
        self.channels = list(channels)

    def via(self, notifiable):
        return self.channels

    def to_mail(self, notifiable):
        return MailMessage().subject("Invoice paid").line(f"We received {self.amount}.")

    def to_database(self, notifiable):
        return {"amount": self.amount}


class QueuedInvoicePaid(InvoicePaid, ShouldQueue):
    pass


class RecordingChannel(Channel):
    def __init__(self):
        self.sent = []

    async def send(self, notifiable, notification):
        self.sent.append((notifiable, notification))


class FailingChannel(Channel):
    async def send(self, notifiable, notification):
        raise RuntimeError("channel down")


@pytest.fixture
def mailer() -> Mailer:
    return Mailer({"default": "array", "mailers": {"array": {"transport": "array"}}})


@pytest.fixture
def sender():
    sender = NotificationSender()
    Notifiable.use_sender(sender)
    yield sender
    Notifiable.use_sender(None)


class TestNotification:
    def test_id_is_stable(self):
        notification = InvoicePaid(10)
        assert notification.id == notification.id
        assert len(notification.id) == 36
        assert InvoicePaid(10).id != notification.id

    def test_default_mail_route(self):
        assert Member(1, "a@example.com").route_notification_for("mail") == "a@example.com"
        assert Member(1).route_notification_for("sms") is None

    @pytest.mark.asyncio
    async def test_notify_without_sender(self):
        Notifiable.use_sender(None)
        with pytest.raises(NotificationError, match="use_sender"):
            await Member(1).notify(InvoicePaid(5))


class TestSender:
    @pytest.mark.asyncio
    async def test_notify_goes_through_channels(self, sender):
        channel = RecordingChannel()
        sender.register_channel("mail", channel)
        member = Member(1, "a@example.com")

        await member.notify(InvoicePaid(20))
        assert channel.sent[0][0] is member

    @pytest.mark.asyncio
    async def test_many_notifiables(self, sender):
        channel = RecordingChannel()
        sender.register_channel("mail", channel)
        await sender.send([Member(1), Member(2), Member(3)], InvoicePaid(5))
        assert [n.id for n, _ in channel.sent] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_channel_factory(self, sender):
        channel = RecordingChannel()
        sender.register_channel("mail", lambda: channel)
        await sender.send_now(Member(1), InvoicePaid(5))
        assert len(channel.sent) == 1

    @pytest.mark.asyncio
    async def test_unknown_channel_is_skipped(self, sender):
        channel = RecordingChannel()
        sender.register_channel("mail", channel)
        await sender.send(Member(1), InvoicePaid(5, channels=("sms", "mail")))
        assert len(channel.sent) == 1

    @pytest.mark.asyncio
    async def test_failing_channel_does_not_stop_others(self, sender):
        channel = RecordingChannel()
        sender.register_channel("broken", FailingChannel())
        sender.register_channel("mail", channel)
        await sender.send(Member(1), InvoicePaid(5, channels=("broken", "mail")))
        assert len(channel.sent) == 1

    @pytest.mark.asyncio
    async def test_queued_notification_is_delivered(self, sender):
        channel = RecordingChannel()
        sender.register_channel("mail", channel)
        await sender.send(Member(1), QueuedInvoicePaid(5))
        assert len(channel.sent) == 1

    def test_format_notifiables(self):
        member = Member(1)
        assert NotificationSender.format_notifiables(member) == [member]
        assert NotificationSender.format_notifiables(iter([member])) == [member]


class TestMailChannel:
    @pytest.mark.asyncio
    async def test_sends_to_routed_address(self, mailer):
        await MailChannel(mailer).send(Member(1, "a@example.com"), InvoicePaid(30))

        transport = mailer.transport()
        assert isinstance(transport, ArrayTransport)
        message = transport.messages[0]
        assert message["To"] == "a@example.com"
        assert message["Subject"] == "Invoice paid"

    @pytest.mark.asyncio
    async def test_plain_objects_use_email_and_name(self, mailer):
        class Contact:
            email = "c@example.com"
            name = "Cy"

        await MailChannel(mailer).send(Contact(), InvoicePaid(30))
        assert mailer.transport().messages[0]["To"] == "Cy <c@example.com>"

    @pytest.mark.asyncio
    async def test_missing_recipient(self, mailer):
        with pytest.raises(NotificationError, match="No mail recipient"):
            await MailChannel(mailer).send(Guest(), InvoicePaid(30))

    @pytest.mark.asyncio
    async def test_to_mail_must_return_mailable(self, mailer):
        class Silent(Notification):
            def via(self, notifiable):
                return ["mail"]

        with pytest.raises(NotificationError, match="must return a Mailable"):
            await MailChannel(mailer).send(Member(1, "a@example.com"), Silent())


class TestDatabaseChannel:
    @pytest.fixture
    async def notifications_table(self, db):
        await db.execute(
            "CREATE TABLE notifications (id TEXT PRIMARY KEY, type TEXT, notifiable_type TEXT, "
            "notifiable_id INTEGER, data TEXT, read_at TEXT NULL, created_at TEXT, updated_at TEXT)"
        )
        return db

    @pytest.mark.asyncio
    async def test_stores_row(self, notifications_table):
        notification = InvoicePaid(99, channels=("database",))
        await DatabaseChannel(notifications_table).send(Member(7), notification)

        rows = await notifications_table.fetch_all("SELECT * FROM notifications")
        assert len(rows) == 1
        row = rows[0]
        assert row["id"] == notification.id
        assert row["type"] == "tests.test_notifications.InvoicePaid"
        assert row["notifiable_type"] == "tests.test_notifications.Member"
        assert row["notifiable_id"] == 7
        assert orjson.loads(row["data"]) == {"amount": 99}
        assert row["read_at"] is None
        assert row["created_at"] == row["updated_at"]

    @pytest.mark.asyncio
    async def test_requires_get_key(self, db):
        with pytest.raises(NotificationError, match="get_key"):
            await DatabaseChannel(db).send(Guest(), InvoicePaid(1))
