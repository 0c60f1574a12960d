"""
Prompt Library Module.

This module holds the instruction texts handed to the extraction oracle
and the small amount of logic that picks and assembles them.

Prompts:
    - CREDIT_MEMO_PROMPT: Vendor credit memo extraction (document type
      detection, NARDA patterns, bill number rules, example output)
    - DATA_EXTRACTION_SYSTEM_PROMPT: System prompt for the retry-folder job
    - VALIDATION_SYSTEM_PROMPT: System prompt for transaction validation

Author: AP Automation Team
"""

import json
from typing import Any, Dict, Iterable, Optional

from config import get_config
from ap_assist.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)


CREDIT_MEMO_PROMPT = """VENDOR CREDIT MEMO EXTRACTION

STEP 1: DOCUMENT TYPE DETECTION
=================================
Check the top right corner for these phrases:
  - "WARRANTY CREDIT"
  - "RETURN CREDIT"
  - "CREDIT MEMO"

If found: This is a CREDIT MEMO - proceed with extraction
If NOT found: Set isCreditMemo=false, skip line items, return error message

VALID NARDA PATTERNS - Extract if matches:
- CONCDA, CONCDAM, CONCESSION, NF, CORE (vendor credits)
- J followed by ANY characters (J17052, J1234, etc.) - if it starts with capital J in the NARDA column, it is VALID
- INV###### (INV followed by 6+ digits)
- SHORT, BOX
- NOT part numbers or manufacturer codes (BSH, GEH, WPL, SPE)

EXTRACT FROM PDF:
1. isCreditMemo: true/false (based on WARRANTY CREDIT, RETURN CREDIT, or CREDIT MEMO text presence)
2. Credit Type: EXACT text from the top right header, "Warranty Credit" or "Return Credit".
   Leave empty string if neither found
3. Invoice Number: 8-digit number at top left
4. Invoice Date: MM/DD/YYYY format
5. PO Number: top right corner area, labeled "P.O. Number" or "PO#" (may be empty)
6. Delivery Amount: dollar amount with $ symbol (from the delivery line)
7. Document Total: grand total at bottom (e.g. "($136.68)" or "$0.00")
8. Line Items - ONLY IF isCreditMemo=true, for EACH line with a valid NARDA:
   - NARDA Number: pattern above, remove spaces ("CONCDA M" -> "CONCDAM", "N F" -> "NF")
   - Total Amount: with ( ) and $ (e.g. "($42.24)")
   - Part Number: from the "Part Number" column, on the SAME ROW as Total Amount
     * Leave empty string if no part number is on the same row as Total Amount
   - Bill Number: EMBEDDED IN THE PRODUCT DESCRIPTION - REQUIRED FOR ALL CREDITS
     * Search for capital letter N or W followed immediately by consecutive digits
     * Extract ONLY the 8 digits (exclude the N or W prefix)
     * Examples:
       - "BURNRHEAN66811026" -> "66811026"
       - "GLASS-DOOW91738138" -> "91738138"
       - "CONFIGUREW699863" + next line "15" -> "69986315"
     * CRITICAL: Bill numbers are ALWAYS EXACTLY 8 digits (not 7, not 9)
     * MULTI-LINE RULE: if N or W is followed by LESS than 8 digits, check the next
       line and concatenate digits until there are exactly 8
     * DO NOT return partial bill numbers with only 5-7 digits
   - Sales Order Number: below the product description, "SOASER" followed by digits.
     Extract the FULL value including prefix. Leave empty string if not found

CRITICAL RULES:
- The NARDA column is BETWEEN description and part number, NOT the "Make" column
- Bill numbers are EMBEDDED in description text, not in a separate column
- Document Total MUST equal: sum(line item totals) + delivery amount
- If isCreditMemo=false, return an empty lineItems array with validationError
- Output ONLY valid JSON, no explanations

EXAMPLE OUTPUT:
{"isCreditMemo":true,"creditType":"Warranty Credit","invoiceNumber":"67718510","invoiceDate":"09/11/2025","poNumber":"12345","deliveryAmount":"$0.00","documentTotal":"($94.58)","lineItems":[{"nardaNumber":"NF","partNumber":"WR49X10322","totalAmount":"($94.58)","originalBillNumber":"66811026","salesOrderNumber":"SOASER15386"}],"validationError":""}"""


CORRECTIVE_PREAMBLE = (
    "CRITICAL: Previous extraction had invalid bill numbers.\n\n"
    "{reason}\n\n"
    "Please re-analyze this PDF and extract EXACTLY 8-digit bill numbers for each line item.\n"
    "Remember: Bill numbers are embedded in the Description column "
    "(look for N or W followed by 8 digits).\n"
    "If the number spans multiple lines, concatenate to get exactly 8 digits total.\n\n"
    "All line items MUST have valid 8-digit original bill numbers.\n\n"
)


DATA_EXTRACTION_SYSTEM_PROMPT = (
    "You are a data extraction expert. Extract structured JSON data from the "
    "provided PDF document. Follow the specific instructions provided in the "
    "user prompt carefully."
)

GENERIC_EXTRACTION_PROMPT = (
    "Extract all relevant data from this PDF and return as structured JSON."
)


VALIDATION_SYSTEM_PROMPT = """You are an accounts payable manager reviewing transactions that were created automatically from vendor documents.

Compare the accounting transaction with the source data extracted from the vendor's PDF. Check entity, amounts, dates, reference numbers, line items and account assignments.

Structure your answer as:
1. SUMMARY: one paragraph
2. ISSUES: each discrepancy with severity CRITICAL, WARNING or INFO
3. RECOMMENDATION: APPROVE if the transaction is correct, otherwise REJECT

End with a single line "RESULT: PASS" or "RESULT: FAIL"."""


VALIDATION_FOCUS = {
    "comprehensive": "Review every aspect of the transaction: entity, amounts, dates, references, lines and accounts.",
    "amounts": "Focus on amounts: line totals, document total, signs and rounding.",
    "accounts": "Focus on account assignments and their consistency with the line descriptions.",
    "entities": "Focus on the vendor/entity and reference numbers.",
}


class PromptLibrary:
    """
    Resolves routing-rule prompt references into extraction instructions.

    A rule's ``prompt_template`` is either the key of a built-in template
    or literal custom prompt text configured in the document store.

    Attributes:
        templates: Built-in templates keyed by name.
        default_key: Template used when a rule carries no prompt.

    Example:
        >>> library = PromptLibrary()
        >>> prompt = library.resolve("credit_memo", "memo.pdf")
        >>> prompt.endswith("Document: memo.pdf")
        True
    """

    def __init__(
        self,
        templates: Optional[Dict[str, str]] = None,
        default_key: Optional[str] = None
    ) -> None:
        self.templates = dict(templates or {"credit_memo": CREDIT_MEMO_PROMPT})
        self.default_key = default_key or get_config("extraction.default_prompt", "credit_memo")

    def base_instructions(self, prompt_template: Optional[str]) -> str:
        """Instruction text for a rule, without the document line."""
        reference = (prompt_template or "").strip()
        if not reference:
            reference = self.default_key

        if reference in self.templates:
            return self.templates[reference]

        logger.debug(f"Using custom prompt text ({len(reference)} chars)")
        return reference

    def resolve(self, prompt_template: Optional[str], filename: str) -> str:
        """
        Build the full extraction prompt for one document.

        Args:
            prompt_template: Template key or literal prompt text.
            filename: Document filename appended for the oracle's context.

        Returns:
            Prompt text ending with "Document: <filename>".
        """
        return f"{self.base_instructions(prompt_template)}\n\nDocument: {filename}"

    @staticmethod
    def corrective_prompt(reason: str, base_prompt: str) -> str:
        """Prefix ``base_prompt`` with the failed-rule preamble."""
        return CORRECTIVE_PREAMBLE.format(reason=reason) + base_prompt


def build_validation_prompt(
    transaction: Dict[str, Any],
    source_data: Optional[Dict[str, Any]] = None,
    validation_type: str = "comprehensive",
    custom_rules: Optional[Iterable[str]] = None
) -> str:
    """
    Build the user prompt for validating one accounting transaction.

    Args:
        transaction: Transaction record as returned by the document store.
        source_data: JSON extracted from the source PDF, if one was found.
        validation_type: Key of VALIDATION_FOCUS.
        custom_rules: Additional rules listed verbatim.

    Returns:
        Prompt text.
    """
    focus = VALIDATION_FOCUS.get(validation_type, VALIDATION_FOCUS["comprehensive"])

    sections = [f"VALIDATION TYPE: {validation_type}", focus]

    rules = list(custom_rules or [])
    if rules:
        sections.append("ADDITIONAL RULES:\n" + "\n".join(f"- {rule}" for rule in rules))

    sections.append("TRANSACTION:\n" + json.dumps(transaction, indent=2, default=str))

    if source_data:
        sections.append("SOURCE DOCUMENT DATA:\n" + json.dumps(source_data, indent=2, default=str))
    else:
        sections.append("SOURCE DOCUMENT DATA:\nNo extracted source data was found for this transaction.")

    return "\n\n".join(sections)


__all__ = [
    'CREDIT_MEMO_PROMPT',
    'CORRECTIVE_PREAMBLE',
    'DATA_EXTRACTION_SYSTEM_PROMPT',
    'GENERIC_EXTRACTION_PROMPT',
    'VALIDATION_SYSTEM_PROMPT',
    'VALIDATION_FOCUS',
    'PromptLibrary',
    'build_validation_prompt',
]
