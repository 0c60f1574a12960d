"""
Transaction Validator Module.

Scheduled second opinion on the accounting transactions created from
extracted documents. Each transaction recently created by the pipeline
and not yet validated is sent to the oracle together with the data
extracted from its source PDF; the free-text review decides whether the
transaction passed and whether it has critical issues.

Verdict rules (case-insensitive substring checks on the review):
    - passed:   contains both "pass" and "approve"
    - critical: contains "critical" or "reject"

Author: AP Automation Team
"""

import asyncio
import json
import time
from dataclasses import asdict, dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple

from config import get_config
from ap_assist.utils.logger import get_logger
from ap_assist.utils.exceptions import APAssistError, DocumentStoreError, OracleTransportError, ReportError
from ap_assist.utils.helpers import truncate
from ap_assist.extraction.oracle_client import ExtractionOracle
from ap_assist.extraction.prompts import VALIDATION_SYSTEM_PROMPT, build_validation_prompt
from ap_assist.extraction.retry import call_with_backoff
from ap_assist.output_handler.excel_exporter import ExcelExporter
from ap_assist.pipeline.batch_scheduler import BatchScheduler, ItemOutcome
from .report import EmailReporter, ValidationSummary, build_report_body, build_report_subject, summarize

# Initialize module logger
logger = get_logger(__name__)

# Transaction body fields maintained by the validator
FIELD_PROCESSED = "custbody_ap_assist_processed"
FIELD_VALIDATED = "custbody_ap_assist_validated"
FIELD_VALIDATION_PASS = "custbody_ap_assist_validation_pass"
FIELD_VALIDATION_DATE = "custbody_ap_assist_validation_date"
FIELD_VALIDATION_FAIL = "custbody_ap_assist_validation_fail"
FIELD_VALIDATION_NOTES = "custbody_ap_assist_validation_notes"


def assess_report(report: str) -> Tuple[bool, bool]:
    """
    Derive the verdict from a review.

    Returns:
        Tuple of (is_passed, has_critical_issues).

    Example:
        >>> assess_report("RECOMMENDATION: APPROVE\\nRESULT: PASS")
        (True, False)
    """
    text = (report or "").lower()
    is_passed = "pass" in text and "approve" in text
    has_critical_issues = "critical" in text or "reject" in text
    return is_passed, has_critical_issues


@dataclass
class TransactionCheck:
    """
    Validation result of one transaction.

    Attributes:
        record_type: Transaction record type (vendorcredit, journalentry).
        record_id: Internal id.
        tran_id: Human readable transaction number.
        success: Whether the review was obtained.
        is_passed: Review verdict.
        has_critical_issues: Whether the review reports critical issues.
        report: Full review text.
        error: Error message when the review could not be obtained.
        duration: Seconds spent on this transaction.
        model: Model that wrote the review.
        flagged: Whether the transaction was flagged with the review.
    """
    record_type: str
    record_id: str
    tran_id: str = ""
    success: bool = False
    is_passed: bool = False
    has_critical_issues: bool = False
    report: str = ""
    error: Optional[str] = None
    duration: float = 0.0
    model: str = ""
    flagged: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ValidationRun:
    """Outcome of TransactionValidator.run()."""
    results: List[TransactionCheck] = field(default_factory=list)
    summary: ValidationSummary = field(default_factory=ValidationSummary)
    excel_path: Optional[str] = None
    emailed: bool = False


class TransactionValidator:
    """
    Validates recently created transactions with the oracle.

    Attributes:
        store: RestletClient exposing the transaction actions.
        oracle: Oracle client (the validation model is used).
        scheduler: Batch scheduler bounding concurrency.
        record_types: Record types searched.
        custom_rules: Extra rules added to every prompt.

    Example:
        >>> validator = TransactionValidator(RestletClient(), ExtractionOracle())
        >>> run = await validator.run(days_back=1, email_recipient="ap@example.com")
        >>> print(run.summary.pass_rate)
    """

    def __init__(
        self,
        store: Any,
        oracle: ExtractionOracle,
        scheduler: Optional[BatchScheduler] = None,
        exporter: Optional[ExcelExporter] = None,
        reporter: Optional[EmailReporter] = None,
        record_types: Optional[List[str]] = None,
        custom_rules: Optional[List[str]] = None,
        model: Optional[str] = None,
        notes_max_length: Optional[int] = None,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        sleep=asyncio.sleep
    ) -> None:
        self.store = store
        self.oracle = oracle
        self.scheduler = scheduler or BatchScheduler(sleep=sleep)
        self.exporter = exporter
        self.reporter = reporter
        self.record_types = record_types or get_config(
            "transaction_validation.record_types", ["vendorcredit", "journalentry"]
        )
        self.custom_rules = custom_rules if custom_rules is not None else get_config(
            "transaction_validation.custom_rules", []
        )
        self.model = model or get_config("oracle.validation_model")
        self.notes_max_length = notes_max_length or get_config(
            "transaction_validation.notes_max_length", 3000
        )
        self.max_attempts = max_attempts or get_config("oracle.rate_limit.max_attempts", 3)
        self.base_delay = base_delay if base_delay is not None else float(
            get_config("oracle.rate_limit.base_delay_seconds", 10)
        )
        self.marker = get_config("oracle.rate_limit.marker", OracleTransportError.RATE_LIMIT_MARKER)
        self.sleep = sleep

    # -------------------------------------------------------------------------
    # Store access
    # -------------------------------------------------------------------------

    async def find_transactions(self, days_back: int, today: Optional[date] = None) -> List[Dict[str, Any]]:
        """
        Transactions created on or after ``today - days_back`` that were
        processed by the pipeline and not validated yet.
        """
        cutoff = (today or date.today()) - timedelta(days=days_back)
        filters = {FIELD_PROCESSED: True, FIELD_VALIDATED: False}

        transactions: List[Dict[str, Any]] = []
        for record_type in self.record_types:
            found = await self.store.search_transactions(record_type, cutoff.isoformat(), filters)
            logger.info(f"Found {len(found)} {record_type} transaction(s) since {cutoff.isoformat()}")
            for summary in found:
                transactions.append({**summary, "recordType": record_type})
        return transactions

    async def load_source_data(self, transaction: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """JSON extracted from the transaction's source PDF, if attached."""
        file_id = transaction.get("sourceJsonFileId")
        if not file_id:
            return None

        try:
            file_info = await self.store.load_file(str(file_id))
            data = json.loads(file_info.get("contents") or "null")
        except (DocumentStoreError, ValueError) as e:
            logger.warning(f"Could not load source data {file_id}: {e}")
            return None
        return data if isinstance(data, dict) else None

    async def flag_transaction(self, record_type: str, record_id: str, report: str) -> bool:
        """Flag a transaction with the (truncated) review; returns success."""
        try:
            await self.store.update_transaction(record_type, record_id, {
                FIELD_VALIDATION_FAIL: True,
                FIELD_VALIDATION_NOTES: truncate(report, self.notes_max_length),
            })
        except DocumentStoreError as e:
            logger.error(f"Error flagging {record_type} {record_id}: {e}")
            return False
        logger.info(f"Flagged {record_type} {record_id} with validation issues")
        return True

    async def mark_validated(
        self,
        record_type: str,
        record_id: str,
        is_passed: bool,
        today: Optional[date] = None
    ) -> None:
        try:
            await self.store.update_transaction(record_type, record_id, {
                FIELD_VALIDATED: True,
                FIELD_VALIDATION_PASS: is_passed,
                FIELD_VALIDATION_DATE: (today or date.today()).isoformat(),
            })
        except DocumentStoreError as e:
            logger.error(f"Error marking {record_type} {record_id} as validated: {e}")

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    async def validate_transaction(
        self,
        summary: Dict[str, Any],
        validation_type: str = "comprehensive",
        auto_flag: bool = False
    ) -> TransactionCheck:
        """
        Validate one transaction.

        Args:
            summary: Search result ({recordType, recordId, tranId, ...}).
            validation_type: Key of the validation focus.
            auto_flag: Flag transactions with critical issues.

        Returns:
            TransactionCheck; errors are reported in it, never raised.
        """
        check = TransactionCheck(
            record_type=summary["recordType"],
            record_id=str(summary.get("recordId", "")),
            tran_id=str(summary.get("tranId") or "")
        )
        started = time.monotonic()

        try:
            transaction = await self.store.load_transaction(check.record_type, check.record_id)
            source_data = await self.load_source_data(transaction)
            prompt = build_validation_prompt(
                transaction, source_data, validation_type, self.custom_rules
            )

            logger.debug(f"Calling oracle to validate {check.record_type} {check.tran_id}")
            response = await call_with_backoff(
                lambda: self.oracle.complete(
                    prompt,
                    system_prompt=VALIDATION_SYSTEM_PROMPT,
                    model=self.model
                ),
                max_attempts=self.max_attempts,
                base_delay=self.base_delay,
                marker=self.marker,
                sleep=self.sleep
            )
        except APAssistError as e:
            check.error = str(e)
            check.duration = time.monotonic() - started
            logger.error(f"Validation of {check.record_type} {check.record_id} failed: {e}")
            return check

        check.success = True
        check.report = response.text
        check.model = response.model
        check.is_passed, check.has_critical_issues = assess_report(response.text)

        if check.has_critical_issues and auto_flag:
            check.flagged = await self.flag_transaction(check.record_type, check.record_id, check.report)

        await self.mark_validated(check.record_type, check.record_id, check.is_passed)
        check.duration = time.monotonic() - started

        logger.info(
            f"{check.record_type} {check.tran_id or check.record_id}: "
            f"{'PASSED' if check.is_passed else 'FAILED'}"
            f"{' (critical issues)' if check.has_critical_issues else ''}"
        )
        return check

    async def _validate_item(
        self,
        summary: Dict[str, Any],
        validation_type: str,
        auto_flag: bool
    ) -> ItemOutcome:
        check = await self.validate_transaction(summary, validation_type, auto_flag)
        return ItemOutcome(
            name=f"{check.record_type} {check.tran_id or check.record_id}",
            success=check.success,
            value=check,
            error=check.error,
            flagged=check.flagged
        )

    async def run(
        self,
        validation_type: Optional[str] = None,
        days_back: Optional[int] = None,
        email_recipient: Optional[str] = None,
        auto_flag: Optional[bool] = None
    ) -> ValidationRun:
        """
        Validate every pending transaction, then report.

        Args:
            validation_type: Validation focus. If None, uses config.
            days_back: Look-back window in days. If None, uses config.
            email_recipient: Summary recipient. If None, uses config.
            auto_flag: Flag critical transactions. If None, uses config.

        Returns:
            ValidationRun with results, summary and report locations.

        Raises:
            DocumentStoreError: If the transaction search fails.
        """
        validation_type = validation_type or get_config("transaction_validation.validation_type", "comprehensive")
        days_back = days_back if days_back is not None else get_config("transaction_validation.days_back", 1)
        email_recipient = email_recipient if email_recipient is not None else get_config(
            "transaction_validation.email_recipient", ""
        )
        auto_flag = auto_flag if auto_flag is not None else get_config(
            "transaction_validation.auto_flag_issues", False
        )

        logger.info(
            f"Transaction validation started (type={validation_type}, "
            f"days_back={days_back}, auto_flag={auto_flag})"
        )

        transactions = await self.find_transactions(days_back)
        run = ValidationRun()
        if not transactions:
            logger.info("No transactions to validate")
            return run

        report = await self.scheduler.run(
            transactions,
            lambda summary: self._validate_item(summary, validation_type, auto_flag),
            name="transaction-validation",
            item_name=lambda summary: f"{summary['recordType']} {summary.get('tranId') or summary.get('recordId')}"
        )

        for transaction, outcome in zip(transactions, report.outcomes):
            if isinstance(outcome.value, TransactionCheck):
                run.results.append(outcome.value)
            else:
                run.results.append(TransactionCheck(
                    record_type=transaction["recordType"],
                    record_id=str(transaction.get("recordId", "")),
                    tran_id=str(transaction.get("tranId") or ""),
                    error=outcome.error
                ))

        run.summary = summarize(run.results)
        logger.info(
            f"Validation complete: {run.summary.passed} passed, {run.summary.failed} failed, "
            f"{run.summary.errors} errors, pass rate {run.summary.pass_rate}"
        )

        if email_recipient:
            reporter = self.reporter or EmailReporter()
            try:
                await reporter.send(
                    email_recipient,
                    build_report_subject(),
                    build_report_body(run.results, run.summary)
                )
                run.emailed = True
            except ReportError as e:
                logger.error(f"Error sending validation email: {e}")

        if get_config("output.excel.enabled", True):
            exporter = self.exporter or ExcelExporter()
            try:
                run.excel_path = exporter.export(run.results, run.summary)
            except ReportError as e:
                logger.error(f"Error exporting validation results: {e}")

        return run
