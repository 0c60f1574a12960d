"""
Validation Report Module.

Summarizes a transaction validation run and mails the summary to the
accounts payable team.

Functions:
    summarize: Count passed, failed, errored and critical results
    build_report_subject / build_report_body: Plain text email content

Author: AP Automation Team
"""

import asyncio
import smtplib
from dataclasses import asdict, dataclass
from datetime import date
from email.message import EmailMessage
from typing import Any, Dict, List, Optional

from config import get_config
from ap_assist.utils.logger import get_logger
from ap_assist.utils.exceptions import ReportError
from ap_assist.utils.helpers import truncate

# Initialize module logger
logger = get_logger(__name__)

RULE = "=" * 60
SEPARATOR = "-" * 60


@dataclass
class ValidationSummary:
    """Counters of one validation run."""
    total: int = 0
    passed: int = 0
    failed: int = 0
    errors: int = 0
    critical_issues: int = 0
    pass_rate: str = "0%"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def summarize(results: List[Any]) -> ValidationSummary:
    """
    Summarize TransactionCheck results.

    Errored checks count as errors only; a critical issue is counted
    independently of the pass/fail outcome.
    """
    summary = ValidationSummary(total=len(results))
    for result in results:
        if not result.success:
            summary.errors += 1
        elif result.is_passed:
            summary.passed += 1
        else:
            summary.failed += 1

        if result.has_critical_issues:
            summary.critical_issues += 1

    if summary.total:
        summary.pass_rate = f"{summary.passed / summary.total * 100:.1f}%"
    return summary


def build_report_subject(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"AP Assist Transaction Validation Report - {today.isoformat()}"


def build_report_body(
    results: List[Any],
    summary: ValidationSummary,
    snippet_length: Optional[int] = None
) -> str:
    """
    Plain text report listing every errored or critical transaction.

    Args:
        results: TransactionCheck results.
        summary: Summary of ``results``.
        snippet_length: Characters of each report included (default 500).

    Returns:
        Email body.
    """
    snippet_length = snippet_length or get_config("transaction_validation.report_snippet_length", 500)

    lines = [
        "AP Assist Transaction Validation Summary",
        "",
        RULE,
        "",
        f"Total Transactions Validated: {summary.total}",
        f"Passed: {summary.passed}",
        f"Failed: {summary.failed}",
        f"Errors: {summary.errors}",
        f"Critical Issues Found: {summary.critical_issues}",
        f"Pass Rate: {summary.pass_rate}",
        "",
        RULE,
        "",
    ]

    has_issues = False
    for result in results:
        if result.success and not result.has_critical_issues:
            continue

        has_issues = True
        lines.append(f"Transaction: {result.tran_id} (ID: {result.record_id})")
        lines.append(f"Type: {result.record_type}")
        lines.append(f"Status: {'VALIDATED' if result.success else 'ERROR'}")
        if result.has_critical_issues:
            lines.append("CRITICAL ISSUES FOUND")
        if result.error:
            lines.append(f"Error: {result.error}")
        if result.report:
            lines.append(f"Report: {truncate(result.report, snippet_length)}...")
        lines.extend(["", SEPARATOR, ""])

    if not has_issues:
        lines.append("All transactions passed validation successfully!")

    return "\n".join(lines) + "\n"


class EmailReporter:
    """
    Sends validation reports over SMTP.

    Attributes:
        host: SMTP server host.
        port: SMTP server port.
        sender: From address.

    Example:
        >>> reporter = EmailReporter()
        >>> await reporter.send("ap@example.com", subject, body)
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: Optional[bool] = None,
        sender: Optional[str] = None,
        smtp_factory=smtplib.SMTP
    ) -> None:
        self.host = host or get_config("email.smtp_host", "")
        self.port = port or get_config("email.smtp_port", 587)
        self.username = username or get_config("email.username", "")
        self.password = password or get_config("email.password", "")
        self.use_tls = use_tls if use_tls is not None else get_config("email.use_tls", True)
        self.sender = sender or get_config("email.sender", "ap-assist@localhost")
        self._smtp_factory = smtp_factory

    @property
    def is_configured(self) -> bool:
        return bool(self.host)

    def _send_sync(self, message: EmailMessage) -> None:
        with self._smtp_factory(self.host, self.port) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(message)

    async def send(self, recipient: str, subject: str, body: str) -> None:
        """
        Send one plain text email.

        Raises:
            ReportError: If SMTP is not configured or sending fails.
        """
        if not self.is_configured:
            raise ReportError(recipient, "SMTP host not configured")

        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content(body)

        try:
            await asyncio.to_thread(self._send_sync, message)
        except (smtplib.SMTPException, OSError) as e:
            raise ReportError(recipient, str(e)) from e

        logger.info(f"Validation email sent to {recipient}")
