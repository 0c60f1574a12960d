"""
Field Validators Module.

The oracle does the document understanding; this module re-checks the one
rule the accounting side cannot live without: every extracted credit line
must reference the original bill by an 8-digit number.

Author: AP Automation Team
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from config import get_config
from ap_assist.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)

EMPTY_MARKER = "(empty)"


@dataclass
class InvalidItem:
    """A line item whose bill number failed the rule."""
    index: int
    secondary_id: Optional[str]
    value: str
    length: int

    def describe(self, required_length: int, secondary_label: str) -> str:
        """Human-readable diagnostic for one failing line."""
        label = f"Line {self.index + 1}"
        if self.secondary_id:
            label += f" ({secondary_label}: {self.secondary_id})"
        return (
            f'{label}: "{self.value}" is {self.length} digits '
            f'(need {required_length})'
        )


@dataclass
class ValidationOutcome:
    """
    Result of a field validation pass.

    Attributes:
        valid: Whether every line item passed.
        reason: Concatenated diagnostics, empty when valid.
        invalid_items: Failing items in line order.
    """
    valid: bool = True
    reason: str = ""
    invalid_items: List[InvalidItem] = field(default_factory=list)

    @property
    def invalid_indices(self) -> List[int]:
        """0-based indices of the failing line items."""
        return [item.index for item in self.invalid_items]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'valid': self.valid,
            'reason': self.reason,
            'invalid_indices': self.invalid_indices
        }


class BillNumberValidator:
    """
    Checks that every line item carries an exactly 8-digit bill number.

    A missing or empty line-items list is valid: there is nothing to check.

    Example:
        >>> validator = BillNumberValidator()
        >>> outcome = validator.validate({"lineItems": [
        ...     {"nardaNumber": "NF", "originalBillNumber": "6681102"}
        ... ]})
        >>> outcome.valid
        False
        >>> outcome.reason
        'Invalid bill numbers found: Line 1 (NARDA: NF): "6681102" is 7 digits (need 8)'
    """

    SECONDARY_LABEL = "NARDA"

    def __init__(
        self,
        items_key: Optional[str] = None,
        field_name: Optional[str] = None,
        secondary_field: Optional[str] = None,
        length: Optional[int] = None
    ) -> None:
        self.items_key = items_key or get_config("extraction.items_key", "lineItems")
        self.field_name = field_name or get_config(
            "extraction.bill_number_field", "originalBillNumber"
        )
        self.secondary_field = secondary_field or get_config(
            "extraction.secondary_field", "nardaNumber"
        )
        self.length = length or get_config("extraction.bill_number_length", 8)
        self._pattern = re.compile(rf"[0-9]{{{self.length}}}")

    def is_valid_bill_number(self, value: Any) -> bool:
        """Whether ``value`` is a string of exactly ``length`` ASCII digits."""
        return isinstance(value, str) and bool(self._pattern.fullmatch(value))

    def validate(self, result: Union[Any, Dict[str, Any], None]) -> ValidationOutcome:
        """
        Validate the bill numbers of every line item.

        Args:
            result: ExtractionResult or the raw extracted dictionary.

        Returns:
            ValidationOutcome listing the failing items.
        """
        if isinstance(result, dict):
            items = result.get(self.items_key)
        else:
            items = getattr(result, "line_items", None)

        if not isinstance(items, list) or not items:
            return ValidationOutcome(valid=True)

        invalid: List[InvalidItem] = []
        for index, item in enumerate(items):
            item = item if isinstance(item, dict) else {}
            value = item.get(self.field_name)

            if self.is_valid_bill_number(value):
                continue

            present = value not in (None, "")
            secondary = item.get(self.secondary_field)
            invalid.append(InvalidItem(
                index=index,
                secondary_id=str(secondary) if secondary not in (None, "") else None,
                value=str(value) if present else EMPTY_MARKER,
                length=len(str(value)) if present else 0
            ))

        if not invalid:
            return ValidationOutcome(valid=True)

        details = "; ".join(
            item.describe(self.length, self.SECONDARY_LABEL) for item in invalid
        )
        outcome = ValidationOutcome(
            valid=False,
            reason=f"Invalid bill numbers found: {details}",
            invalid_items=invalid
        )
        logger.debug(f"Bill number validation failed for lines {outcome.invalid_indices}")
        return outcome
