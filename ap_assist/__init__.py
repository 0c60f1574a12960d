"""
AP Assist Pipeline - Source Package.

Email-to-accounting automation: vendor emails are polled from a mailbox,
their PDF attachments are sent to an LLM oracle for structured extraction,
and the results are persisted to the back-office document store. Two
scheduled jobs re-extract poorly parsed PDFs and validate the accounting
transactions created from them.

Modules:
    - document_source: IMAP mailbox and document store folder sources
    - routing: Ordered routing rules and periodic config refresh
    - extraction: Oracle client, prompts, response parser, retry control
    - postprocessor: Local field validation (bill numbers)
    - pipeline: Batch scheduler, per-document pipeline, poller, retry job
    - output_handler: RESTlet client, local store, ledger, Excel export
    - validation: LLM-based transaction validation and reporting

Architecture:
    Mailbox → Routing → Oracle → Parser → Validator ⇄ Retry → Sink
                 ↑                                  (batched, bounded)
           Config Refresh
"""

__version__ = "1.0.0"
__author__ = "AP Automation Team"

__all__ = [
    'document_source',
    'routing',
    'extraction',
    'postprocessor',
    'pipeline',
    'output_handler',
    'validation',
    'utils'
]
