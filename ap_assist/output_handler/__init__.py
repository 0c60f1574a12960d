"""
Output Handler Module for the AP Assist Pipeline.

This module persists processed documents and reports:
    - Signed RESTlet client for the document store
    - Local disk copies of PDFs and results
    - SQLite ledger of processed documents
    - Excel export of transaction validation results
"""

from .restlet_client import RestletClient
from .local_store import LocalStore
from .ledger import LedgerEntry, ProcessingLedger
from .handler import OutputHandler, UploadReceipt
from .excel_exporter import ExcelExporter

__all__ = [
    'RestletClient',
    'LocalStore',
    'LedgerEntry',
    'ProcessingLedger',
    'OutputHandler',
    'UploadReceipt',
    'ExcelExporter'
]
