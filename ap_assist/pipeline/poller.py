"""
Email Poller Module.

The long-running service: polls the mailbox on a fixed interval, routes
each new message by its sender and subject, runs the PDF attachments
through the document pipeline in bounded groups, and keeps the routing
rules fresh in the background.

Lifecycle:
    1. Startup: required settings checked, initial config refresh,
       mailbox connection (failure is fatal)
    2. Config refresh task every refresh interval
    3. Poll tick every poll interval; a tick that fires while the previous
       cycle is still running is skipped
    4. stop(): the in-flight cycle finishes, then connections are closed

Author: AP Automation Team
"""

import asyncio
import signal
from typing import Any, Dict, List, Optional

from config import ConfigurationManager, get_config
from ap_assist.utils.logger import get_logger
from ap_assist.utils.exceptions import LedgerError, MailboxError
from ap_assist.document_source.email_parser import MailMessage, pdf_documents
from ap_assist.document_source.mailbox import MailboxClient
from ap_assist.extraction.oracle_client import ExtractionOracle
from ap_assist.extraction.prompts import PromptLibrary
from ap_assist.extraction.retry import ExtractionController
from ap_assist.output_handler.handler import OutputHandler
from ap_assist.output_handler.ledger import ProcessingLedger
from ap_assist.output_handler.restlet_client import RestletClient
from ap_assist.routing.config_refresh import ConfigRefresher
from ap_assist.routing.rules import RuleBook, rules_from_settings
from .batch_scheduler import BatchReport, BatchScheduler
from .document_pipeline import DocumentPipeline

# Initialize module logger
logger = get_logger(__name__)

REQUIRED_ENV = ["IMAP_HOST", "IMAP_USER", "IMAP_PASSWORD", "ANTHROPIC_API_KEY"]


class EmailPoller:
    """
    Mailbox polling service.

    Attributes:
        mailbox: The single mailbox connection.
        rulebook: Current routing rules.
        pipeline: Per-document pipeline.
        scheduler: Batch scheduler for a message's PDFs.
        refresher: Optional routing config refresher.
        poll_interval: Seconds between poll ticks.
        mark_as_read: Whether handled messages are marked seen.

    Example:
        >>> poller = EmailPoller.from_config()
        >>> await poller.run()
    """

    def __init__(
        self,
        mailbox: MailboxClient,
        rulebook: RuleBook,
        pipeline: DocumentPipeline,
        scheduler: BatchScheduler,
        refresher: Optional[ConfigRefresher] = None,
        poll_interval: Optional[float] = None,
        mark_as_read: Optional[bool] = None,
        closeables: Optional[List[Any]] = None
    ) -> None:
        self.mailbox = mailbox
        self.rulebook = rulebook
        self.pipeline = pipeline
        self.scheduler = scheduler
        self.refresher = refresher
        if poll_interval is None:
            poll_interval = get_config("mailbox.poll_interval_ms", 60000) / 1000.0
        self.poll_interval = poll_interval
        self.mark_as_read = mark_as_read if mark_as_read is not None else \
            get_config("mailbox.mark_as_read", True)
        self._closeables = closeables or []

        self._cycle_lock = asyncio.Lock()
        self._cycle_task: Optional[asyncio.Task] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self.cycles_run = 0
        self.cycles_skipped = 0
        self.stop_signal: Optional[int] = None
        self.ledger_stats: Optional[Dict[str, Any]] = None

    @classmethod
    def from_config(cls) -> 'EmailPoller':
        """
        Build a poller and its collaborators from configuration.

        Raises:
            ConfigurationError: If a required environment variable is missing.
        """
        ConfigurationManager().require(REQUIRED_ENV)

        store = RestletClient()
        controller = ExtractionController(ExtractionOracle())
        ledger = ProcessingLedger() if get_config("output.ledger.enabled", True) else None
        pipeline = DocumentPipeline(controller, PromptLibrary(), OutputHandler(store=store), ledger)
        rulebook = RuleBook(rules_from_settings())

        refresher = None
        if store.is_configured:
            refresher = ConfigRefresher(store, rulebook)
        else:
            logger.warning(
                "Config fetching disabled (NETSUITE_ENABLED=false or no RESTlet URL); "
                "using default rules"
            )

        return cls(
            MailboxClient(),
            rulebook,
            pipeline,
            BatchScheduler(),
            refresher=refresher,
            closeables=[store]
        )

    # -------------------------------------------------------------------------
    # Poll cycle
    # -------------------------------------------------------------------------

    async def handle_message(self, message: MailMessage) -> Optional[BatchReport]:
        """
        Route one message and process its PDF attachments.

        Args:
            message: Parsed email.

        Returns:
            BatchReport of its PDFs, or None when nothing was processed.
        """
        logger.info(f"Processing email {message.uid}")
        logger.info(f"  From: {message.sender or 'Unknown'}")
        logger.info(f"  Subject: {message.subject or 'No Subject'}")

        report = None
        rule = self.rulebook.match(message.sender, message.subject)
        if rule is None:
            logger.info("Skipping - no matching rule for this email")
        else:
            documents = list(pdf_documents(message))
            if not documents:
                logger.info(f"Found {len(message.attachments)} attachment(s), but no PDFs")
            else:
                logger.info(f"Found {len(documents)} PDF attachment(s)")
                report = await self.scheduler.run(
                    documents,
                    lambda document: self.pipeline.process(document, rule),
                    name=f"email {message.uid}"
                )

        if self.mark_as_read:
            await self.mailbox.mark_seen(message.uid)
        return report

    async def _run_cycle(self) -> List[BatchReport]:
        reports: List[BatchReport] = []
        try:
            async for message in self.mailbox.new_messages():
                report = await self.handle_message(message)
                if report is not None:
                    reports.append(report)
        except MailboxError as e:
            logger.error(f"Poll cycle aborted: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error in poll cycle: {e}")
        return reports

    async def poll_once(self) -> Optional[List[BatchReport]]:
        """
        Run one poll cycle unless one is already running.

        Returns:
            Batch reports of the cycle, or None if it was skipped.
        """
        if self._cycle_lock.locked():
            self.cycles_skipped += 1
            logger.warning("Previous poll cycle still running; skipping this tick")
            return None

        async with self._cycle_lock:
            logger.debug("Checking for new emails...")
            reports = await self._run_cycle()
            self.cycles_run += 1
            return reports

    def tick(self) -> None:
        """Start a poll cycle in the background unless one is in flight."""
        if self._cycle_task is not None and not self._cycle_task.done():
            self.cycles_skipped += 1
            logger.warning("Previous poll cycle still running; skipping this tick")
            return
        self._cycle_task = asyncio.create_task(self.poll_once(), name="poll-cycle")

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """
        Initial config refresh and mailbox connection.

        Raises:
            MailboxError: If the mailbox connection fails.
        """
        for rule in self.rulebook.enabled():
            logger.info(f"Rule enabled: {rule.describe()}")

        if self.refresher is not None:
            await self.refresher.refresh_once()
            self._refresh_task = asyncio.create_task(
                self.refresher.run_forever(refresh_first=False),
                name="config-refresh"
            )

        await self.mailbox.connect()

    def stop(self, sig: Optional[int] = None) -> None:
        """Request shutdown after the in-flight cycle."""
        if sig is not None and self.stop_signal is None:
            self.stop_signal = sig
            logger.info(f"Received signal {sig}; shutting down after current cycle")
        self._stop_event.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop, sig)
            except (NotImplementedError, RuntimeError):
                logger.debug(f"Signal handler for {sig} not supported on this platform")

    async def _wait_for_stop(self, timeout: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass

    async def shutdown(self) -> None:
        """Let the in-flight cycle finish, then release every connection."""
        if self._cycle_task is not None and not self._cycle_task.done():
            logger.info("Waiting for the in-flight poll cycle to finish...")
            await self._cycle_task

        if self._refresh_task is not None:
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass

        await self.mailbox.close()
        for resource in self._closeables:
            await resource.close()

        try:
            stats = await self.pipeline.ledger_statistics()
        except LedgerError as e:
            logger.error(f"Could not read ledger statistics: {e}")
            stats = None
        if stats:
            logger.info(
                f"Ledger: {stats['total']} document(s), {stats['succeeded']} succeeded, "
                f"{stats['failed']} failed, {stats['flagged']} flagged"
            )
        self.ledger_stats = stats
        logger.info("Email poller stopped")

    async def run(self, install_signal_handlers: bool = True) -> None:
        """
        Run until stop() is called.

        Raises:
            MailboxError: If the startup connection fails.
        """
        if install_signal_handlers:
            self._install_signal_handlers()

        try:
            await self.start()
            logger.info(f"Email poller started (interval {self.poll_interval:.0f}s)")

            while not self._stop_event.is_set():
                self.tick()
                await self._wait_for_stop(self.poll_interval)
        finally:
            await self.shutdown()
