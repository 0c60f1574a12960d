"""
Main Output Handler Module.

This module provides the OutputHandler class that persists one processed
document: optional local copies first, then the upload of the PDF and
its extracted JSON to the document store.

Author: AP Automation Team
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from config import get_config
from ap_assist.utils.logger import get_logger
from ap_assist.utils.exceptions import SinkError
from ap_assist.utils.helpers import store_filename
from ap_assist.document_source.document import RawDocument
from ap_assist.routing.rules import Destination
from .local_store import LocalStore
from .restlet_client import RestletClient

# Initialize module logger
logger = get_logger(__name__)


@dataclass
class UploadReceipt:
    """
    Result of persisting one document.

    Attributes:
        success: Whether the document was persisted.
        primary_file_id: Store id of the uploaded PDF.
        secondary_file_id: Store id of the uploaded JSON, if any.
        error: Error message when not successful.
        skipped: True when the store integration is disabled.
        filename: Store filename used for the PDF.
    """
    success: bool
    primary_file_id: Optional[str] = None
    secondary_file_id: Optional[str] = None
    error: Optional[str] = None
    skipped: bool = False
    filename: Optional[str] = None


class OutputHandler:
    """
    Unified sink for processed documents.

    Attributes:
        store: RestletClient used for uploads.
        local_store: LocalStore for optional disk copies.
        default_destination: Folders used when a rule names none.

    Example:
        >>> handler = OutputHandler(store=RestletClient())
        >>> receipt = await handler.persist(document, payload, rule.destination)
        >>> print(receipt.primary_file_id)
    """

    def __init__(
        self,
        store: Optional[RestletClient] = None,
        local_store: Optional[LocalStore] = None,
        default_destination: Optional[Destination] = None
    ) -> None:
        self.store = store or RestletClient()
        self.local_store = local_store or LocalStore()
        self.default_destination = default_destination or Destination(
            primary_folder_id=get_config("document_store.default_primary_folder_id") or None,
            secondary_folder_id=get_config("document_store.default_secondary_folder_id") or None
        )

        logger.info(
            f"OutputHandler initialized "
            f"(store={self.store.is_configured}, "
            f"save_pdfs={self.local_store.save_pdfs}, "
            f"save_results={self.local_store.save_results})"
        )

    def resolve_destination(self, destination: Optional[Destination]) -> Destination:
        """Fill folder ids missing from ``destination`` with the defaults."""
        destination = destination or Destination()
        return Destination(
            primary_folder_id=destination.primary_folder_id or self.default_destination.primary_folder_id,
            secondary_folder_id=destination.secondary_folder_id or self.default_destination.secondary_folder_id
        )

    async def persist(
        self,
        document: RawDocument,
        payload: Optional[Dict[str, Any]],
        destination: Optional[Destination] = None,
        now: Optional[datetime] = None
    ) -> UploadReceipt:
        """
        Persist a document and its extracted JSON.

        Args:
            document: The processed PDF.
            payload: Extracted JSON object, or None to upload the PDF only.
            destination: Target folders (defaults fill missing ids).
            now: Timestamp for file names.

        Returns:
            UploadReceipt with the store file ids.

        Raises:
            SinkError: If a local copy cannot be written or the upload fails.
        """
        now = now or datetime.now(timezone.utc)

        try:
            self.local_store.save_pdf(document, now)
            if payload is not None:
                self.local_store.save_result(document, payload, now)
        except OSError as e:
            raise SinkError("local save", str(e)) from e

        filename = store_filename(document.filename, now=now)

        if not self.store.is_configured:
            logger.info("Document store upload disabled (set NETSUITE_ENABLED=true to enable)")
            return UploadReceipt(success=True, skipped=True, filename=filename)

        folders = self.resolve_destination(destination)
        logger.info(
            f"Uploading {filename} (pdf folder={folders.primary_folder_id}, "
            f"json folder={folders.secondary_folder_id})"
        )

        response = await self.store.upload_document(
            document.content,
            filename,
            payload,
            folders.primary_folder_id,
            folders.secondary_folder_id,
            subject=document.metadata.get("subject", ""),
            now=now
        )

        receipt = UploadReceipt(
            success=True,
            primary_file_id=_as_id(response.get("pdfFileId")),
            secondary_file_id=_as_id(response.get("jsonFileId")),
            filename=filename
        )
        logger.info(
            f"Uploaded {filename} (PDF file id: {receipt.primary_file_id or 'N/A'}, "
            f"JSON file id: {receipt.secondary_file_id or 'N/A'})"
        )
        return receipt


def _as_id(value: Any) -> Optional[str]:
    return str(value) if value not in (None, "") else None
