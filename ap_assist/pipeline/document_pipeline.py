"""
Document Pipeline Module.

Per-document pipeline of the email poller:

    ledger check -> prompt -> extract (+ validation retry) -> persist -> ledger

Every error raised along the way is converted into a failed ItemOutcome
here, so the batch scheduler and the poll cycle only ever see outcomes.

Author: AP Automation Team
"""

import asyncio
from typing import Any, Dict, Optional

from ap_assist.utils.logger import get_logger
from ap_assist.utils.exceptions import APAssistError, LedgerError
from ap_assist.utils.helpers import format_file_size
from ap_assist.document_source.document import RawDocument
from ap_assist.extraction.prompts import PromptLibrary
from ap_assist.extraction.retry import ExtractionController, ExtractionOutcome
from ap_assist.output_handler.handler import OutputHandler
from ap_assist.output_handler.ledger import (
    LedgerEntry, ProcessingLedger, STATUS_FAILED, STATUS_SUCCESS
)
from ap_assist.routing.rules import RoutingRule
from .batch_scheduler import ItemOutcome

# Initialize module logger
logger = get_logger(__name__)

VALIDATION_FLAG_KEY = "_validationFlag"


def build_payload(outcome: ExtractionOutcome) -> Dict[str, Any]:
    """
    JSON persisted for one document.

    A flagged result carries the uncorrected diagnostic under
    ``_validationFlag`` so the problem travels with the data.
    """
    payload = outcome.result.to_payload()
    if outcome.flagged:
        payload[VALIDATION_FLAG_KEY] = {
            "flagged": True,
            "reason": outcome.reason,
            "attempts": [attempt.to_dict() for attempt in outcome.attempts],
        }
    return payload


class DocumentPipeline:
    """
    Extracts and persists one routed document.

    Attributes:
        controller: Extraction controller (oracle + validation retry).
        prompts: Prompt library resolving rule prompts.
        output: Output handler persisting results.
        ledger: Optional processing ledger for duplicate detection.

    Example:
        >>> pipeline = DocumentPipeline(controller, PromptLibrary(), OutputHandler())
        >>> outcome = await pipeline.process(document, rule)
    """

    def __init__(
        self,
        controller: ExtractionController,
        prompts: PromptLibrary,
        output: OutputHandler,
        ledger: Optional[ProcessingLedger] = None
    ) -> None:
        self.controller = controller
        self.prompts = prompts
        self.output = output
        self.ledger = ledger

    # Ledger (SQLite) calls run in a worker thread

    async def _already_processed(self, document: RawDocument) -> bool:
        message_id = document.metadata.get("message_id")
        if self.ledger is None or not message_id:
            return False
        return await asyncio.to_thread(self.ledger.is_processed, message_id, document.filename)

    async def _record(self, entry: LedgerEntry) -> None:
        if self.ledger is None or not entry.message_id:
            return
        try:
            await asyncio.to_thread(self.ledger.record, entry)
        except LedgerError as e:
            logger.error(f"Could not record {entry.filename} in ledger: {e}")

    async def ledger_statistics(self) -> Optional[Dict[str, Any]]:
        """Ledger counts, or None when no ledger is configured."""
        if self.ledger is None:
            return None
        return await asyncio.to_thread(self.ledger.get_statistics)

    async def process(self, document: RawDocument, rule: RoutingRule) -> ItemOutcome:
        """
        Run the full pipeline for one document.

        Args:
            document: PDF attachment.
            rule: Routing rule matched by the containing email.

        Returns:
            ItemOutcome; never raises for pipeline errors.
        """
        name = document.filename
        message_id = document.metadata.get("message_id", "")
        logger.info(f"Processing: {name} ({format_file_size(document.size)})")

        try:
            if await self._already_processed(document):
                logger.info(f"{name} already processed for message {message_id}; skipping")
                return ItemOutcome(name=name, success=True, value="duplicate")

            prompt = self.prompts.resolve(rule.prompt_template, name)
            outcome = await self.controller.extract(document, prompt)
            receipt = await self.output.persist(document, build_payload(outcome), rule.destination)

        except APAssistError as e:
            logger.error(f"Failed to process {name}: {e}")
            await self._record(LedgerEntry(
                message_id=message_id,
                filename=name,
                rule_name=rule.name,
                status=STATUS_FAILED,
                reason=str(e)
            ))
            return ItemOutcome(name=name, success=False, error=str(e))

        transport_attempts = sum(attempt.transport_attempts for attempt in outcome.attempts)
        await self._record(LedgerEntry(
            message_id=message_id,
            filename=name,
            rule_name=rule.name,
            status=STATUS_SUCCESS,
            flagged=outcome.flagged,
            reason=outcome.reason if outcome.flagged else (outcome.result.validation_error or ""),
            primary_file_id=receipt.primary_file_id,
            secondary_file_id=receipt.secondary_file_id,
            validation_attempts=outcome.validation_attempts,
            transport_attempts=transport_attempts
        ))

        if not outcome.result.is_accepted_document_type:
            logger.warning(
                f"{name} is not an accepted document type: "
                f"{outcome.result.validation_error or 'no reason given'}"
            )

        return ItemOutcome(
            name=name,
            success=True,
            value=receipt,
            error=outcome.reason if outcome.flagged else None,
            flagged=outcome.flagged
        )
