"""
Post-Processing Module for the AP Assist Pipeline.

This module provides local validation of oracle output:
    - Bill number rule (exactly 8 digits on every line item)
    - Structured outcomes with per-line diagnostics

Author: AP Automation Team
"""

from .validators import BillNumberValidator, ValidationOutcome, InvalidItem

__all__ = [
    'BillNumberValidator',
    'ValidationOutcome',
    'InvalidItem'
]
