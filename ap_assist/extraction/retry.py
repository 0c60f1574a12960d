"""
Retry Controller Module.

Two independent escalation paths wrap every extraction:

    - Transport retry: an oracle call failing with a rate-limit error is
      repeated with exponential backoff (10s, 20s, 40s, ...) up to a fixed
      number of attempts. Any other transport error propagates at once.
    - Validation retry: a result failing the bill-number rule is extracted
      once more with a corrective prompt. The second result is kept whether
      or not it passes; a still-invalid result is flagged, never dropped.

The counters for the two paths are kept separately per document.

Author: AP Automation Team
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from config import get_config
from ap_assist.utils.logger import get_logger
from ap_assist.utils.exceptions import OracleTransportError, ResponseParseError
from ap_assist.postprocessor.validators import BillNumberValidator, ValidationOutcome
from .extraction_result import ExtractionResult, OracleResponse, ProcessingAttempt
from .oracle_client import ExtractionOracle
from .prompts import PromptLibrary
from .response_parser import parse_json_response

# Initialize module logger
logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Delay before retrying after the 0-based ``attempt`` failed."""
    return (2 ** attempt) * base_delay


async def call_with_backoff(
    call: Callable[[], Awaitable[Any]],
    *,
    max_attempts: int = 3,
    base_delay: float = 10.0,
    marker: str = OracleTransportError.RATE_LIMIT_MARKER,
    sleep: Sleep = asyncio.sleep
) -> Any:
    """
    Await ``call()``, retrying rate-limited failures with exponential backoff.

    Args:
        call: Zero-argument coroutine factory, invoked once per attempt.
        max_attempts: Total number of attempts, including the first.
        base_delay: Delay in seconds after the first failed attempt.
        marker: Substring identifying a rate-limit error message.
        sleep: Awaitable sleep function (injected by tests).

    Returns:
        The result of the first successful attempt.

    Raises:
        OracleTransportError: The last rate-limit error once attempts are
            exhausted, or any non rate-limit transport error immediately.

    Example:
        >>> response = await call_with_backoff(lambda: oracle.complete(prompt))
    """
    attempt = 0
    while True:
        try:
            return await call()
        except OracleTransportError as e:
            if marker not in e.message:
                raise
            if attempt + 1 >= max_attempts:
                logger.error(f"Rate limited; giving up after {attempt + 1} attempt(s)")
                raise

            delay = backoff_delay(attempt, base_delay)
            logger.warning(
                f"Rate limited on attempt {attempt + 1}/{max_attempts}, "
                f"retrying in {delay:.0f}s"
            )
            await sleep(delay)
            attempt += 1


@dataclass
class ExtractionOutcome:
    """
    Final result of the extraction stage for one document.

    Attributes:
        result: Data to persist (second attempt's data when one was made).
        validation: Validation of ``result``.
        flagged: True when the persisted data has an uncorrected problem.
        attempts: Every ProcessingAttempt made for this document.
        response: Oracle response that produced ``result``.
    """
    result: ExtractionResult
    validation: ValidationOutcome
    flagged: bool = False
    attempts: List[ProcessingAttempt] = field(default_factory=list)
    response: Optional[OracleResponse] = None

    @property
    def reason(self) -> str:
        """Validation diagnostic of the persisted data, if any."""
        return self.validation.reason

    @property
    def validation_attempts(self) -> int:
        return len(self.attempts)


class ExtractionController:
    """
    Runs extract, validate and at most one corrective re-extraction.

    Attributes:
        oracle: Extraction oracle client.
        validator: Bill number validator.
        max_attempts: Transport attempts per oracle call.
        base_delay: Backoff base delay in seconds.

    Example:
        >>> controller = ExtractionController(ExtractionOracle())
        >>> outcome = await controller.extract(document, prompt)
        >>> if outcome.flagged:
        ...     print(outcome.reason)
    """

    MAX_VALIDATION_ATTEMPTS = 2

    def __init__(
        self,
        oracle: ExtractionOracle,
        validator: Optional[BillNumberValidator] = None,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        marker: Optional[str] = None,
        sleep: Sleep = asyncio.sleep,
        type_key: Optional[str] = None,
        items_key: Optional[str] = None
    ) -> None:
        self.oracle = oracle
        self.validator = validator or BillNumberValidator()
        self.max_attempts = max_attempts or get_config("oracle.rate_limit.max_attempts", 3)
        self.base_delay = base_delay if base_delay is not None else float(
            get_config("oracle.rate_limit.base_delay_seconds", 10)
        )
        self.marker = marker or get_config(
            "oracle.rate_limit.marker", OracleTransportError.RATE_LIMIT_MARKER
        )
        self.sleep = sleep
        self.type_key = type_key or get_config("extraction.document_type_key", "isCreditMemo")
        self.items_key = items_key or get_config("extraction.items_key", "lineItems")

    async def _attempt(
        self,
        document: Any,
        instructions: str,
        record: ProcessingAttempt
    ) -> Tuple[OracleResponse, ExtractionResult]:
        """One oracle call (with transport retries) plus parsing."""

        async def call() -> OracleResponse:
            record.transport_attempts += 1
            return await self.oracle.complete(instructions, document.content)

        try:
            response = await call_with_backoff(
                call,
                max_attempts=self.max_attempts,
                base_delay=self.base_delay,
                marker=self.marker,
                sleep=self.sleep
            )
        except OracleTransportError as e:
            record.outcome = "transport_error"
            record.detail = e.message
            raise

        try:
            payload = parse_json_response(response.text)
            result = ExtractionResult.from_payload(payload, self.type_key, self.items_key)
        except ResponseParseError as e:
            record.outcome = "parse_error"
            record.detail = e.message
            raise

        return response, result

    async def extract(self, document: Any, prompt: str) -> ExtractionOutcome:
        """
        Extract one document, retrying once with a corrective prompt.

        Args:
            document: RawDocument with ``content`` and ``filename``.
            prompt: Initial extraction instructions.

        Returns:
            ExtractionOutcome for persistence.

        Raises:
            OracleTransportError: If the initial extraction call fails.
            ResponseParseError: If the initial response holds no JSON object.
        """
        attempts: List[ProcessingAttempt] = []
        result: Optional[ExtractionResult] = None
        validation: Optional[ValidationOutcome] = None
        response: Optional[OracleResponse] = None
        flagged = False

        for number in range(1, self.MAX_VALIDATION_ATTEMPTS + 1):
            if number == 1:
                variant, instructions = "initial", prompt
            else:
                variant = "corrective"
                instructions = PromptLibrary.corrective_prompt(validation.reason, prompt)
                logger.info(
                    f"Retrying {document.filename} with corrective prompt "
                    f"(attempt {number}/{self.MAX_VALIDATION_ATTEMPTS})"
                )

            record = ProcessingAttempt(
                document=document.filename,
                prompt_variant=variant,
                validation_attempt=number
            )
            attempts.append(record)

            try:
                response_n, result_n = await self._attempt(document, instructions, record)
            except (OracleTransportError, ResponseParseError) as e:
                if result is None:
                    raise
                logger.warning(
                    f"Corrective extraction failed for {document.filename}: {e}; "
                    f"keeping first attempt's data"
                )
                flagged = True
                break

            result, response = result_n, response_n
            validation = self.validator.validate(result)
            record.outcome = "valid" if validation.valid else "invalid"
            record.detail = validation.reason

            if validation.valid:
                flagged = False
                break

            logger.warning(f"{document.filename}: {validation.reason}")
            flagged = True

        if flagged:
            logger.warning(
                f"{document.filename} still has invalid bill numbers after "
                f"{len(attempts)} attempt(s); persisting flagged result"
            )

        return ExtractionOutcome(
            result=result,
            validation=validation,
            flagged=flagged,
            attempts=attempts,
            response=response
        )
