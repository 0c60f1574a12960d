import asyncio
import imaplib

import pytest

from ap_assist.document_source.mailbox import MailboxClient
from ap_assist.utils.exceptions import MailboxError
from fakes import FakeIMAP, build_email


def client_for(imap):
    return MailboxClient(host="imap.example.com", port=993, user="ap", password="secret",
                         imap_factory=lambda host, port: imap)


async def collect(mailbox):
    return [message async for message in mailbox.new_messages()]


def test_new_messages_are_fetched_without_marking_seen():
    imap = FakeIMAP({"1": build_email(), "2": build_email(subject="Other")})
    mailbox = client_for(imap)

    messages = asyncio.run(collect(mailbox))

    assert [m.uid for m in messages] == ["1", "2"]
    assert imap.logged_in
    assert ("FETCH", "1", "(BODY.PEEK[])") in imap.commands
    assert imap.seen == set()


def test_mark_seen_hides_message_from_next_search():
    imap = FakeIMAP({"1": build_email(), "2": build_email()})
    mailbox = client_for(imap)

    async def scenario():
        await mailbox.connect()
        await mailbox.mark_seen("1")
        return await mailbox.search()

    assert asyncio.run(scenario()) == ["2"]
    assert ("STORE", "1", "+FLAGS", "(\\Seen)") in imap.commands


def test_empty_mailbox():
    assert asyncio.run(collect(client_for(FakeIMAP()))) == []


def test_connection_failure_raises_mailbox_error():
    def refuse(host, port):
        raise ConnectionRefusedError("connection refused")

    mailbox = MailboxClient(host="imap.example.com", user="ap", password="x", imap_factory=refuse)

    with pytest.raises(MailboxError):
        asyncio.run(mailbox.connect())
    assert not mailbox.is_connected


def test_aborted_connection_is_dropped():
    imap = FakeIMAP({"1": build_email()})
    imap.fail_fetch = imaplib.IMAP4.abort("socket error: EOF")
    mailbox = client_for(imap)

    with pytest.raises(MailboxError):
        asyncio.run(collect(mailbox))
    assert not mailbox.is_connected


def test_close_logs_out():
    imap = FakeIMAP()
    mailbox = client_for(imap)

    async def scenario():
        await mailbox.connect()
        await mailbox.close()

    asyncio.run(scenario())
    assert imap.logged_out
    assert not mailbox.is_connected
