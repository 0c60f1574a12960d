"""
Extraction Result Data Classes.

This module defines the structures produced by the extraction stage:
the normalized ExtractionResult built from the oracle's JSON payload, the
OracleResponse returned by the oracle client, and the ProcessingAttempt
records kept while an item moves through the retry controller.
"""

from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ap_assist.utils.exceptions import ResponseParseError


DEFAULT_TYPE_KEY = "isCreditMemo"
DEFAULT_ITEMS_KEY = "lineItems"
VALIDATION_ERROR_KEY = "validationError"

FALSE_STRINGS = ("false", "0", "no", "")


def as_flag(value: Any) -> bool:
    """Read a JSON flag that the oracle may have written as a string ("false")."""
    if isinstance(value, str):
        return value.strip().lower() not in FALSE_STRINGS
    return bool(value)


@dataclass
class ExtractionResult:
    """
    Structured data extracted from one document.

    The oracle returns a flat JSON object; the document-type flag and the
    validation error are lifted out, everything else stays in ``fields``.
    The line-items list is always a list: it is forced empty when the
    document is not of the accepted type and defaults to empty when the
    oracle omitted it or returned null.

    Attributes:
        is_accepted_document_type: Oracle verdict on the document type.
        fields: All other extracted values, including the line items.
        validation_error: Oracle-reported problem, empty when none.
        type_key: Payload key holding the document-type flag.
        items_key: Payload key holding the line-items list.

    Example:
        >>> result = ExtractionResult.from_payload(
        ...     {"isCreditMemo": False, "lineItems": None, "validationError": "no header"}
        ... )
        >>> result.line_items
        []
    """
    is_accepted_document_type: bool = True
    fields: Dict[str, Any] = field(default_factory=dict)
    validation_error: str = ""
    type_key: str = DEFAULT_TYPE_KEY
    items_key: str = DEFAULT_ITEMS_KEY

    def __post_init__(self):
        items = self.fields.get(self.items_key)
        if not self.is_accepted_document_type or not isinstance(items, list):
            self.fields[self.items_key] = []

    @property
    def line_items(self) -> List[Any]:
        """Extracted line items (empty for rejected documents)."""
        return self.fields[self.items_key]

    def get(self, name: str, default: Any = None) -> Any:
        """Get an extracted field value."""
        return self.fields.get(name, default)

    @classmethod
    def from_payload(
        cls,
        payload: Any,
        type_key: str = DEFAULT_TYPE_KEY,
        items_key: str = DEFAULT_ITEMS_KEY
    ) -> 'ExtractionResult':
        """
        Build a result from the parsed oracle JSON.

        Args:
            payload: Decoded JSON value from the response parser.
            type_key: Key of the document-type flag. A payload without it
                is treated as an accepted document.
            items_key: Key of the line-items list.

        Returns:
            ExtractionResult instance.

        Raises:
            ResponseParseError: If the payload is not a JSON object.
        """
        if not isinstance(payload, dict):
            raise ResponseParseError(
                f"expected a JSON object, got {type(payload).__name__}"
            )

        fields = deepcopy(payload)
        accepted = fields.pop(type_key, True)
        validation_error = fields.pop(VALIDATION_ERROR_KEY, "") or ""

        return cls(
            is_accepted_document_type=as_flag(accepted),
            fields=fields,
            validation_error=str(validation_error),
            type_key=type_key,
            items_key=items_key
        )

    def to_payload(self) -> Dict[str, Any]:
        """
        Convert back to the JSON object persisted to the document store.

        Returns:
            Dictionary with the type flag, all fields and the validation error.
        """
        payload = {self.type_key: self.is_accepted_document_type}
        payload.update(deepcopy(self.fields))
        payload[VALIDATION_ERROR_KEY] = self.validation_error
        return payload

    def __repr__(self) -> str:
        return (
            f"ExtractionResult("
            f"accepted={self.is_accepted_document_type}, "
            f"items={len(self.line_items)}, "
            f"fields={len(self.fields)})"
        )


@dataclass
class OracleResponse:
    """Text answer from the oracle plus usage counters for logging."""
    text: str
    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    stop_reason: Optional[str] = None


@dataclass
class ProcessingAttempt:
    """
    One (document, prompt variant, attempt number) combination.

    Attributes:
        document: Filename of the document being extracted.
        prompt_variant: "initial" or "corrective".
        validation_attempt: 1 for the initial prompt, 2 for the corrective one.
        transport_attempts: Oracle calls made for this prompt (rate-limit retries).
        outcome: "valid", "invalid", "parse_error" or "transport_error".
        detail: Validation reason or error message.
    """
    document: str
    prompt_variant: str
    validation_attempt: int
    transport_attempts: int = 0
    outcome: str = ""
    detail: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        return {
            'document': self.document,
            'prompt_variant': self.prompt_variant,
            'validation_attempt': self.validation_attempt,
            'transport_attempts': self.transport_attempts,
            'outcome': self.outcome,
            'detail': self.detail
        }
