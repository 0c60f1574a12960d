"""
Local Store Module.

Optionally keeps a copy of every processed PDF and of every extraction
result on local disk, named like the document store files
("<timestamp>_<sanitized name>").
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from config import get_config
from ap_assist.utils.logger import get_logger
from ap_assist.utils.helpers import ensure_directory, store_filename
from ap_assist.document_source.document import RawDocument

logger = get_logger(__name__)


class LocalStore:
    """
    Disk copies of processed PDFs and extraction results.

    Attributes:
        save_pdfs: Whether PDFs are written.
        pdf_dir: Directory receiving PDFs.
        save_results: Whether result JSON is written.
        results_dir: Directory receiving result JSON.
    """

    def __init__(
        self,
        save_pdfs: Optional[bool] = None,
        pdf_dir: Optional[str] = None,
        save_results: Optional[bool] = None,
        results_dir: Optional[str] = None
    ) -> None:
        self.save_pdfs = save_pdfs if save_pdfs is not None else get_config("output.save_pdfs", False)
        self.pdf_dir = Path(pdf_dir or get_config("output.pdf_dir", "outputs/processed-pdfs"))
        self.save_results = save_results if save_results is not None else \
            get_config("output.save_results", False)
        self.results_dir = Path(results_dir or get_config("output.results_dir", "outputs/results"))

    def save_pdf(self, document: RawDocument, now: Optional[datetime] = None) -> Optional[Path]:
        """Write the PDF bytes; returns the path, or None when disabled."""
        if not self.save_pdfs:
            return None

        path = ensure_directory(self.pdf_dir) / store_filename(document.filename, now=now)
        path.write_bytes(document.content)
        logger.info(f"Saved PDF to: {path}")
        return path

    def save_result(
        self,
        document: RawDocument,
        payload: Dict[str, Any],
        now: Optional[datetime] = None
    ) -> Optional[Path]:
        """Write the result JSON; returns the path, or None when disabled."""
        if not self.save_results:
            return None

        path = ensure_directory(self.results_dir) / store_filename(document.filename, ".json", now)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False, default=str)
        logger.info(f"Saved analysis to: {path}")
        return path
