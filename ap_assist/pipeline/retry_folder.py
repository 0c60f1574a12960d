"""
Retry Folder Reprocessor Module.

Reprocesses PDFs that an accounts payable clerk dropped into a vendor's
"retry" folder because the first extraction was poor. For every PDF:

    1. Load it from the document store
    2. Extract with the vendor prompt and the data-extraction system prompt
    3. Append a _retryMetadata block to the extracted JSON
    4. Save <base>.json to the vendor's JSON folder
    5. Move the PDF to the vendor's processed PDF folder

Author: AP Automation Team
"""

import asyncio
import json
import re
import time
from datetime import datetime
from typing import Any, Dict, Optional

from config import get_config
from ap_assist.utils.logger import get_logger
from ap_assist.utils.exceptions import (
    ConfigurationError, DocumentStoreError, OracleTransportError, ResponseParseError
)
from ap_assist.utils.helpers import format_file_size, iso_timestamp
from ap_assist.document_source.store_folder import StoreFolderSource
from ap_assist.extraction.oracle_client import ExtractionOracle
from ap_assist.extraction.prompts import DATA_EXTRACTION_SYSTEM_PROMPT, GENERIC_EXTRACTION_PROMPT
from ap_assist.extraction.response_parser import parse_json_response
from ap_assist.extraction.retry import call_with_backoff
from .batch_scheduler import BatchReport, BatchScheduler, ItemOutcome

# Initialize module logger
logger = get_logger(__name__)

RETRY_METADATA_KEY = "_retryMetadata"
REQUIRED_FOLDERS = ("retryFolderId", "jsonFolderId", "pdfFolderId")

_PDF_SUFFIX = re.compile(r"\.pdf$", re.IGNORECASE)


def json_filename(pdf_name: str) -> str:
    """
    Name of the JSON file saved for a reprocessed PDF.

    Example:
        >>> json_filename("Credit_0042.PDF")
        "Credit_0042.json"
    """
    return _PDF_SUFFIX.sub("", pdf_name) + ".json"


class RetryFolderProcessor:
    """
    Reprocesses the PDFs waiting in a vendor's retry folder.

    Attributes:
        store: RestletClient used for config, files and folders.
        oracle: Extraction oracle client.
        scheduler: Batch scheduler bounding concurrency.
        config_id: Vendor configuration to reprocess.
        max_files: Maximum number of PDFs per run.

    Example:
        >>> processor = RetryFolderProcessor(RestletClient(), ExtractionOracle())
        >>> report = await processor.run()
        >>> print(report.counters.succeeded)
    """

    PROCESS_TYPE = "AP_ASSIST_RETRY"
    RETRY_REASON = "Manual retry - poor initial JSON extraction"

    def __init__(
        self,
        store: Any,
        oracle: ExtractionOracle,
        scheduler: Optional[BatchScheduler] = None,
        config_id: Optional[str] = None,
        max_files: Optional[int] = None,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        sleep=asyncio.sleep
    ) -> None:
        self.store = store
        self.oracle = oracle
        self.scheduler = scheduler or BatchScheduler(sleep=sleep)
        self.config_id = str(config_id or get_config("retry_folder.config_id", "1"))
        self.max_files = max_files or get_config("retry_folder.max_files", 10)
        self.max_attempts = max_attempts or get_config("oracle.rate_limit.max_attempts", 3)
        self.base_delay = base_delay if base_delay is not None else float(
            get_config("oracle.rate_limit.base_delay_seconds", 10)
        )
        self.marker = get_config("oracle.rate_limit.marker", OracleTransportError.RATE_LIMIT_MARKER)
        self.sleep = sleep

    async def load_config(self) -> Dict[str, Any]:
        """
        Load the vendor configuration and check its folder ids.

        Raises:
            ConfigSourceError: If the configuration cannot be fetched.
            ConfigurationError: If a required folder id is missing.
        """
        config = await self.store.fetch_config(self.config_id)
        missing = [key for key in REQUIRED_FOLDERS if not config.get(key)]
        if missing:
            raise ConfigurationError(
                f"Vendor config {self.config_id} is missing folder ids",
                missing=missing
            )

        logger.info(
            f"Loaded config {self.config_id} ({config.get('vendorName', 'unknown vendor')}): "
            f"retry folder {config['retryFolderId']}"
        )
        return config

    def build_metadata(
        self,
        file_info: Dict[str, Any],
        config: Dict[str, Any],
        response: Any,
        duration_ms: int,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """The ``_retryMetadata`` block appended to the extracted JSON."""
        return {
            "processType": self.PROCESS_TYPE,
            "retryTimestamp": iso_timestamp(now),
            "originalPdfFileId": str(file_info.get("id", "")),
            "originalPdfFileName": file_info.get("name", ""),
            "configId": self.config_id,
            "vendorName": config.get("vendorName", ""),
            "claudeModel": response.model,
            "processingDuration": f"{duration_ms}ms",
            "inputTokens": response.input_tokens,
            "outputTokens": response.output_tokens,
            "retryReason": self.RETRY_REASON,
        }

    async def process_file(
        self,
        file_info: Dict[str, Any],
        source: StoreFolderSource,
        config: Dict[str, Any]
    ) -> ItemOutcome:
        """
        Reprocess one PDF.

        Raises:
            DocumentStoreError: If loading or saving fails.
            OracleTransportError: If the oracle call fails.
            ResponseParseError: If the response holds no JSON object.
        """
        started = time.monotonic()
        document = await source.load(file_info)
        instructions = config.get("aiPrompt") or GENERIC_EXTRACTION_PROMPT
        logger.info(f"Reprocessing {document.filename} ({format_file_size(document.size)})")

        response = await call_with_backoff(
            lambda: self.oracle.complete(
                instructions,
                document.content,
                system_prompt=DATA_EXTRACTION_SYSTEM_PROMPT
            ),
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            marker=self.marker,
            sleep=self.sleep
        )

        data = parse_json_response(response.text)
        if not isinstance(data, dict):
            raise ResponseParseError("response is not a JSON object", response.text[:200])

        duration_ms = int((time.monotonic() - started) * 1000)
        data[RETRY_METADATA_KEY] = self.build_metadata(file_info, config, response, duration_ms)

        json_name = json_filename(document.filename)
        json_file_id = await self.store.save_file(
            json_name, json.dumps(data, indent=2), config["jsonFolderId"]
        )
        logger.info(f"Saved {json_name} (id {json_file_id})")

        file_id = str(file_info["id"])
        try:
            pdf_file_id = await self.store.move_file(file_id, config["pdfFolderId"])
        except DocumentStoreError as e:
            logger.error(f"Could not move {document.filename} to processed folder: {e}")
            pdf_file_id = file_id

        return ItemOutcome(
            name=document.filename,
            success=True,
            value={
                "pdfFileId": pdf_file_id,
                "jsonFileId": json_file_id,
                "jsonFileName": json_name,
            }
        )

    async def run(self) -> BatchReport:
        """
        Reprocess every PDF in the retry folder.

        Returns:
            BatchReport of the run (empty when the folder is empty).

        Raises:
            ConfigSourceError: If the vendor configuration cannot be fetched.
            ConfigurationError: If it lacks a required folder id.
            DocumentStoreError: If the folder cannot be listed.
        """
        config = await self.load_config()
        source = StoreFolderSource(self.store, config["retryFolderId"], self.max_files)

        files = await source.list_files()
        if not files:
            logger.info("No files to process in retry folder")
            return BatchReport(name="retry-folder")

        report = await self.scheduler.run(
            files,
            lambda file_info: self.process_file(file_info, source, config),
            name="retry-folder",
            item_name=lambda file_info: str(file_info.get("name") or file_info.get("id"))
        )

        for failure in report.failures:
            logger.error(f"Retry failed for {failure.name}: {failure.error}")
        return report
