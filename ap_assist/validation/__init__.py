"""
Validation Module for the AP Assist Pipeline.

This module reviews the accounting transactions created from processed
documents:
    - Oracle review of each pending transaction
    - Run summary and SMTP email report
"""

from .report import EmailReporter, ValidationSummary, build_report_body, summarize
from .transaction_validator import (
    TransactionCheck, TransactionValidator, ValidationRun, assess_report
)

__all__ = [
    'EmailReporter',
    'ValidationSummary',
    'build_report_body',
    'summarize',
    'TransactionCheck',
    'TransactionValidator',
    'ValidationRun',
    'assess_report'
]
