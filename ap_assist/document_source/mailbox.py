"""
Mailbox Client Module.

This module owns the single long-lived IMAP connection. imaplib is a
blocking library, so every command runs in a worker thread via
asyncio.to_thread; an asyncio.Lock keeps commands on the connection
strictly one at a time.

Features:
    - SSL or plain connection, opened once and reused
    - UID SEARCH with configurable criteria (default UNSEEN)
    - Fetch with BODY.PEEK[] so messages stay unseen until handled
    - Explicit mark_seen after a message has been processed
    - Reconnect on the next cycle after the server drops the connection

Author: AP Automation Team
"""

import asyncio
import imaplib
from typing import Any, AsyncIterator, Callable, List, Optional

from config import get_config
from ap_assist.utils.logger import get_logger
from ap_assist.utils.exceptions import MailboxError
from .email_parser import MailMessage, parse_message

# Initialize module logger
logger = get_logger(__name__)


class MailboxClient:
    """
    Async facade over one imaplib connection.

    Attributes:
        host: IMAP server host.
        port: IMAP server port.
        user: Login user.
        folder: Mailbox folder to select.
        search_criteria: IMAP search criteria for new messages.

    Example:
        >>> mailbox = MailboxClient()
        >>> await mailbox.connect()
        >>> async for message in mailbox.new_messages():
        ...     await handle(message)
        ...     await mailbox.mark_seen(message.uid)
        >>> await mailbox.close()
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        use_ssl: Optional[bool] = None,
        folder: Optional[str] = None,
        search_criteria: Optional[str] = None,
        imap_factory: Optional[Callable[[str, int], Any]] = None
    ) -> None:
        """
        Initialize the mailbox client.

        Args:
            host: IMAP host. If None, uses config.
            port: IMAP port. If None, uses config.
            user: Login user. If None, uses config.
            password: Login password. If None, uses config.
            use_ssl: Use IMAP over SSL. If None, uses config.
            folder: Folder to select. If None, uses config.
            search_criteria: Search criteria. If None, uses config.
            imap_factory: Callable(host, port) returning an IMAP4-like
                connection (for testing).
        """
        self.host = host or get_config("mailbox.host")
        self.port = port or get_config("mailbox.port", 993)
        self.user = user or get_config("mailbox.user")
        self.password = password or get_config("mailbox.password")
        self.use_ssl = use_ssl if use_ssl is not None else get_config("mailbox.use_ssl", True)
        self.folder = folder or get_config("mailbox.folder", "INBOX")
        self.search_criteria = search_criteria or get_config("mailbox.search_criteria", "UNSEEN")

        if imap_factory is None:
            imap_factory = imaplib.IMAP4_SSL if self.use_ssl else imaplib.IMAP4
        self._imap_factory = imap_factory
        self._conn: Optional[Any] = None
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    async def _run(self, operation: str, func: Callable, *args: Any) -> Any:
        """Run one blocking command on the connection."""
        async with self._lock:
            try:
                return await asyncio.to_thread(func, *args)
            except MailboxError:
                raise
            except (imaplib.IMAP4.abort, OSError) as e:
                self._conn = None
                raise MailboxError(operation, str(e)) from e
            except imaplib.IMAP4.error as e:
                raise MailboxError(operation, str(e)) from e

    def _open(self) -> Any:
        conn = self._imap_factory(self.host, self.port)
        conn.login(self.user, self.password)
        typ, _ = conn.select(self.folder)
        if typ != "OK":
            raise MailboxError("select", f"cannot select folder {self.folder}")
        return conn

    async def connect(self) -> None:
        """
        Open the connection and select the folder.

        Raises:
            MailboxError: If the connection or login fails.
        """
        if self._conn is not None:
            return
        logger.info(f"Connecting to {self.host}:{self.port} as {self.user}")
        self._conn = await self._run("connect", self._open)
        logger.info(f"Connected; watching folder {self.folder}")

    def _search(self) -> List[str]:
        typ, data = self._conn.uid("SEARCH", None, self.search_criteria)
        if typ != "OK":
            raise MailboxError("search", f"server answered {typ}")
        if not data or not data[0]:
            return []
        return [uid.decode() if isinstance(uid, bytes) else str(uid) for uid in data[0].split()]

    def _fetch(self, uid: str) -> Optional[bytes]:
        typ, data = self._conn.uid("FETCH", uid, "(BODY.PEEK[])")
        if typ != "OK":
            raise MailboxError("fetch", f"server answered {typ} for uid {uid}")
        for item in data or []:
            if isinstance(item, tuple) and len(item) >= 2:
                return item[1]
        return None

    def _store_seen(self, uid: str) -> None:
        typ, _ = self._conn.uid("STORE", uid, "+FLAGS", "(\\Seen)")
        if typ != "OK":
            raise MailboxError("mark_seen", f"server answered {typ} for uid {uid}")

    async def search(self) -> List[str]:
        """UIDs of the messages matching the search criteria."""
        await self.connect()
        return await self._run("search", self._search)

    async def new_messages(self) -> AsyncIterator[MailMessage]:
        """
        Iterate over the messages matching the search criteria.

        Each message is fetched only when the consumer asks for it.

        Raises:
            MailboxError: If the search or a fetch fails.
        """
        uids = await self.search()
        if uids:
            logger.info(f"Found {len(uids)} new message(s)")

        for uid in uids:
            raw = await self._run("fetch", self._fetch, uid)
            if raw is None:
                logger.warning(f"Message {uid} returned no body; skipping")
                continue
            yield parse_message(raw, uid)

    async def mark_seen(self, uid: str) -> None:
        """Set the \\Seen flag on a handled message."""
        await self._run("mark_seen", self._store_seen, uid)
        logger.debug(f"Marked message {uid} as seen")

    async def close(self) -> None:
        """Log out and drop the connection."""
        if self._conn is None:
            return
        conn = self._conn
        try:
            await self._run("logout", conn.logout)
        except MailboxError as e:
            logger.warning(f"Logout failed: {e}")
        finally:
            self._conn = None
        logger.info("Mailbox connection closed")
