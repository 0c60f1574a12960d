"""
Document Store Folder Source.

Lists the PDFs waiting in a document store folder and loads them as
RawDocuments. Used by the retry-folder reprocessor.
"""

import base64
import binascii
from typing import Any, Dict, List, Optional

from config import get_config
from ap_assist.utils.logger import get_logger
from ap_assist.utils.exceptions import DocumentStoreError
from .document import RawDocument

logger = get_logger(__name__)


class StoreFolderSource:
    """
    PDFs in one document store folder.

    Attributes:
        store: RestletClient (or compatible) used for listing and loading.
        folder_id: Folder to scan.
        max_files: Maximum number of files listed per run.
    """

    def __init__(self, store: Any, folder_id: str, max_files: Optional[int] = None) -> None:
        self.store = store
        self.folder_id = folder_id
        self.max_files = max_files or get_config("retry_folder.max_files", 10)

    async def list_files(self) -> List[Dict[str, Any]]:
        """File descriptors (``id``, ``name``, ...) of the PDFs in the folder."""
        files = await self.store.list_folder_files(
            self.folder_id, file_type="PDF", limit=self.max_files
        )
        logger.info(f"Found {len(files)} PDF(s) in folder {self.folder_id}")
        return files[:self.max_files]

    async def load(self, file_info: Dict[str, Any]) -> RawDocument:
        """
        Load one listed file.

        Raises:
            DocumentStoreError: If the file body is missing or not base64.
        """
        file_id = str(file_info["id"])
        loaded = await self.store.load_file(file_id)
        contents = loaded.get("contents")
        if not contents:
            raise DocumentStoreError("load_file", f"file {file_id} has no contents")

        try:
            content = base64.b64decode(contents, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DocumentStoreError("load_file", f"file {file_id} is not base64: {e}") from e

        return RawDocument(
            content=content,
            filename=loaded.get("name") or file_info.get("name") or f"{file_id}.pdf",
            metadata={"file_id": file_id, "folder_id": self.folder_id}
        )
