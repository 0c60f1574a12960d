"""
Pipeline Module for the AP Assist Pipeline.

This module wires the stages together:
    - Bounded-concurrency batch scheduler
    - Per-document extraction pipeline
    - Mailbox poller service
    - Retry folder reprocessor
"""

from .batch_scheduler import BatchCounters, BatchReport, BatchScheduler, ItemOutcome
from .document_pipeline import DocumentPipeline, build_payload
from .poller import EmailPoller
from .retry_folder import RetryFolderProcessor, json_filename

__all__ = [
    'BatchCounters',
    'BatchReport',
    'BatchScheduler',
    'ItemOutcome',
    'DocumentPipeline',
    'build_payload',
    'EmailPoller',
    'RetryFolderProcessor',
    'json_filename'
]
