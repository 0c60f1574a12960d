"""
Document Store RESTlet Client.

Signed HTTP client for the back-office RESTlet that stores files,
serves vendor processor configurations and exposes the accounting
transactions checked by the validation job.

Every request is signed with OAuth 1.0a (HMAC-SHA256, token based) and
carries the account id as the OAuth realm.

Actions:
    GET  configs             -> {success, configs: [...]}
    GET  config (id)         -> {success, config: {...}}
    POST upload              -> {success, pdfFileId, jsonFileId}
    GET  listFiles           -> {success, files: [...]}
    GET  loadFile (id)       -> {success, file: {id, name, contents}}
    POST saveFile            -> {success, fileId}
    POST moveFile            -> {success, fileId}
    POST searchTransactions  -> {success, transactions: [...]}
    GET  loadTransaction     -> {success, transaction: {...}}
    POST updateTransaction   -> {success}

Author: AP Automation Team
"""

import asyncio
import base64
import json
from datetime import datetime
from typing import Any, Dict, List, Optional, Type
from urllib.parse import urlencode

import aiohttp
from oauthlib.oauth1 import Client as OAuth1Client
from oauthlib.oauth1 import SIGNATURE_HMAC_SHA256

from config import get_config
from ap_assist.utils.logger import get_logger
from ap_assist.utils.exceptions import ConfigSourceError, DocumentStoreError, SinkError
from ap_assist.utils.helpers import iso_timestamp

# Initialize module logger
logger = get_logger(__name__)


class RestletClient:
    """
    Async client for the document store RESTlet.

    Attributes:
        url: RESTlet deployment URL (may already carry script/deploy params).
        account_id: Account id, used as the OAuth realm.
        enabled: Whether document store integration is switched on.

    Example:
        >>> store = RestletClient()
        >>> configs = await store.fetch_configs()
        >>> receipt = await store.upload_document(pdf_bytes, "memo.pdf", data, "9", "10")
        >>> await store.close()
    """

    def __init__(
        self,
        url: Optional[str] = None,
        account_id: Optional[str] = None,
        consumer_key: Optional[str] = None,
        consumer_secret: Optional[str] = None,
        token_id: Optional[str] = None,
        token_secret: Optional[str] = None,
        enabled: Optional[bool] = None,
        upload_timeout: Optional[float] = None,
        request_timeout: Optional[float] = None,
        session: Optional[aiohttp.ClientSession] = None
    ) -> None:
        """
        Initialize the RESTlet client.

        Args:
            url: RESTlet URL. If None, uses config.
            account_id: Account id / OAuth realm. If None, uses config.
            consumer_key: OAuth consumer key. If None, uses config.
            consumer_secret: OAuth consumer secret. If None, uses config.
            token_id: OAuth token id. If None, uses config.
            token_secret: OAuth token secret. If None, uses config.
            enabled: Integration switch. If None, uses config.
            upload_timeout: Upload timeout in seconds (default 60).
            request_timeout: Timeout of the other calls in seconds (default 30).
            session: Pre-built aiohttp session (for testing).
        """
        self.url = url or get_config("document_store.restlet_url", "")
        self.account_id = account_id or get_config("document_store.account_id", "")
        self.consumer_key = consumer_key or get_config("document_store.consumer_key", "")
        self.consumer_secret = consumer_secret or get_config("document_store.consumer_secret", "")
        self.token_id = token_id or get_config("document_store.token_id", "")
        self.token_secret = token_secret or get_config("document_store.token_secret", "")
        self.enabled = enabled if enabled is not None else get_config("document_store.enabled", False)
        self.upload_timeout = upload_timeout or get_config("document_store.upload_timeout_seconds", 60)
        self.request_timeout = request_timeout or get_config("document_store.request_timeout_seconds", 30)

        self._session = session
        self._owns_session = session is None

    @property
    def is_configured(self) -> bool:
        """Whether the integration is enabled and has a URL."""
        return bool(self.enabled and self.url)

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def _build_url(self, params: Optional[Dict[str, Any]] = None) -> str:
        if not params:
            return self.url
        query = urlencode({k: v for k, v in params.items() if v is not None})
        separator = "&" if "?" in self.url else "?"
        return f"{self.url}{separator}{query}"

    def sign(self, url: str, method: str) -> Dict[str, str]:
        """
        Build the request headers with the OAuth 1.0a Authorization header.

        Args:
            url: Full request URL including query parameters.
            method: HTTP method.

        Returns:
            Headers dictionary.
        """
        oauth = OAuth1Client(
            self.consumer_key,
            client_secret=self.consumer_secret,
            resource_owner_key=self.token_id,
            resource_owner_secret=self.token_secret,
            signature_method=SIGNATURE_HMAC_SHA256,
            realm=self.account_id
        )
        _, headers, _ = oauth.sign(url, http_method=method)
        headers["Content-Type"] = "application/json"
        return headers

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request(
        self,
        method: str,
        operation: str,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
        error_class: Type[DocumentStoreError] = DocumentStoreError
    ) -> Dict[str, Any]:
        """
        Send one signed request and return the decoded success body.

        Raises:
            DocumentStoreError: (or ``error_class``) on transport failure,
                a non-2xx status, an undecodable body or ``success: false``.
        """
        if not self.url:
            raise error_class(operation, "RESTlet URL not configured")

        url = self._build_url(params)
        headers = self.sign(url, method)
        session = await self._ensure_session()
        client_timeout = aiohttp.ClientTimeout(total=timeout or self.request_timeout)

        logger.debug(f"{method} {operation} -> {self.url}")
        try:
            async with session.request(
                method,
                url,
                headers=headers,
                data=json.dumps(payload) if payload is not None else None,
                timeout=client_timeout
            ) as resp:
                text = await resp.text()
                status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise error_class(operation, f"{type(e).__name__}: {e}") from e

        if status < 200 or status >= 300:
            raise error_class(operation, text[:500], status=status)

        try:
            body = json.loads(text) if text else {}
        except ValueError as e:
            raise error_class(operation, f"invalid JSON response: {e}", status=status) from e

        if not isinstance(body, dict):
            raise error_class(operation, "response is not a JSON object", status=status)
        if not body.get("success"):
            raise error_class(
                operation,
                str(body.get("error") or body.get("message") or "success=false"),
                status=status
            )
        return body

    # -------------------------------------------------------------------------
    # Processor configurations
    # -------------------------------------------------------------------------

    async def fetch_configs(self) -> Dict[str, Any]:
        """
        Fetch all enabled vendor processor configurations.

        Returns:
            The response body ({success, configs}).

        Raises:
            ConfigSourceError: If the call fails.
        """
        return await self._request(
            "GET", "configs", params={"action": "configs"},
            error_class=ConfigSourceError
        )

    async def fetch_config(self, config_id: str) -> Dict[str, Any]:
        """
        Fetch one vendor configuration by id.

        Returns:
            Configuration dictionary (vendorName, aiPrompt, retryFolderId,
            jsonFolderId, pdfFolderId, ...).
        """
        body = await self._request(
            "GET", "config", params={"action": "config", "id": config_id},
            error_class=ConfigSourceError
        )
        config = body.get("config")
        if not isinstance(config, dict):
            raise ConfigSourceError("config", f"no config returned for id {config_id}")
        return config

    # -------------------------------------------------------------------------
    # Files
    # -------------------------------------------------------------------------

    async def upload_document(
        self,
        content: bytes,
        filename: str,
        extracted_data: Optional[Dict[str, Any]],
        primary_folder_id: Optional[str],
        secondary_folder_id: Optional[str],
        subject: str = "",
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Upload a PDF and its extracted JSON.

        Args:
            content: PDF bytes.
            filename: Store filename of the PDF.
            extracted_data: JSON object saved next to the PDF, if any.
            primary_folder_id: Folder receiving the PDF.
            secondary_folder_id: Folder receiving the JSON.
            subject: Subject of the originating email.
            now: Processing time recorded in the payload.

        Returns:
            Response body with ``pdfFileId`` and ``jsonFileId``.

        Raises:
            SinkError: If the upload fails.
        """
        payload = {
            "action": "upload",
            "pdfBase64": base64.b64encode(content).decode("utf-8"),
            "pdfFilename": filename,
            "emailSubject": subject,
            "extractedData": extracted_data,
            "processedDate": iso_timestamp(now),
            "pdfFolderId": primary_folder_id,
            "jsonFolderId": secondary_folder_id,
        }
        return await self._request(
            "POST", "upload", payload=payload,
            timeout=self.upload_timeout, error_class=SinkError
        )

    async def list_folder_files(
        self,
        folder_id: str,
        file_type: str = "PDF",
        limit: int = 10
    ) -> List[Dict[str, Any]]:
        """List files of one type in a folder, oldest first."""
        body = await self._request(
            "GET", "listFiles",
            params={"action": "listFiles", "folderId": folder_id,
                    "fileType": file_type, "limit": limit}
        )
        files = body.get("files") or []
        if not isinstance(files, list):
            raise DocumentStoreError("listFiles", "files is not a list")
        return files

    async def load_file(self, file_id: str) -> Dict[str, Any]:
        """Load a file; ``contents`` is base64 for binary files."""
        body = await self._request(
            "GET", "loadFile", params={"action": "loadFile", "id": file_id}
        )
        file_info = body.get("file")
        if not isinstance(file_info, dict):
            raise DocumentStoreError("loadFile", f"no file returned for id {file_id}")
        return file_info

    async def save_file(
        self,
        name: str,
        contents: str,
        folder_id: str,
        file_type: str = "JSON"
    ) -> str:
        """
        Create a file in a folder.

        Returns:
            Id of the created file.

        Raises:
            SinkError: If the file cannot be saved.
        """
        body = await self._request(
            "POST", "saveFile",
            payload={"action": "saveFile", "name": name, "contents": contents,
                     "folderId": folder_id, "fileType": file_type},
            error_class=SinkError
        )
        return str(body.get("fileId"))

    async def move_file(self, file_id: str, folder_id: str) -> str:
        """Move a file to another folder; returns the (possibly new) file id."""
        body = await self._request(
            "POST", "moveFile",
            payload={"action": "moveFile", "fileId": file_id, "folderId": folder_id}
        )
        return str(body.get("fileId") or file_id)

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def search_transactions(
        self,
        record_type: str,
        created_on_or_after: str,
        filters: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """
        Search transactions of one record type created on or after a date.

        Returns:
            Transaction summaries ({recordId, tranId, dateCreated, entity}).
        """
        body = await self._request(
            "POST", "searchTransactions",
            payload={"action": "searchTransactions", "recordType": record_type,
                     "createdOnOrAfter": created_on_or_after,
                     "filters": filters or {}}
        )
        transactions = body.get("transactions") or []
        if not isinstance(transactions, list):
            raise DocumentStoreError("searchTransactions", "transactions is not a list")
        return transactions

    async def load_transaction(self, record_type: str, record_id: str) -> Dict[str, Any]:
        """Load a full transaction with its lines and attached source files."""
        body = await self._request(
            "GET", "loadTransaction",
            params={"action": "loadTransaction", "recordType": record_type, "id": record_id}
        )
        transaction = body.get("transaction")
        if not isinstance(transaction, dict):
            raise DocumentStoreError("loadTransaction", f"no transaction {record_type}/{record_id}")
        return transaction

    async def update_transaction(
        self,
        record_type: str,
        record_id: str,
        values: Dict[str, Any]
    ) -> None:
        """Set body field values on a transaction."""
        await self._request(
            "POST", "updateTransaction",
            payload={"action": "updateTransaction", "recordType": record_type,
                     "id": record_id, "values": values}
        )
