"""
Document Source Module for the AP Assist Pipeline.

This module yields the raw PDFs the pipeline works on:
    - Email attachments from the IMAP mailbox
    - Files waiting in a document store folder
"""

from .document import RawDocument
from .email_parser import Attachment, MailMessage, parse_message, pdf_documents
from .mailbox import MailboxClient
from .store_folder import StoreFolderSource

__all__ = [
    'RawDocument',
    'Attachment',
    'MailMessage',
    'parse_message',
    'pdf_documents',
    'MailboxClient',
    'StoreFolderSource'
]
