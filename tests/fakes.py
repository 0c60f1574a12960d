"""In-memory stand-ins for the oracle, the document store and the IMAP server."""

import base64
import json
from email.message import EmailMessage
from typing import Any, Dict, List, Optional

from ap_assist.extraction.extraction_result import OracleResponse
from ap_assist.utils.exceptions import ConfigSourceError, DocumentStoreError, SinkError


VALID_MEMO = {
    "isCreditMemo": True,
    "vendorName": "Example Parts",
    "memoNumber": "CM-1001",
    "lineItems": [
        {"nardaNumber": "J1234", "originalBillNumber": "12345678", "amount": -45.10},
        {"nardaNumber": "NF", "originalBillNumber": "87654321", "amount": -12.00},
    ],
    "validationError": "",
}

INVALID_MEMO = {
    "isCreditMemo": True,
    "vendorName": "Example Parts",
    "lineItems": [
        {"nardaNumber": "NF", "originalBillNumber": "6681102", "amount": -20.00},
    ],
    "validationError": "",
}


def memo_text(payload: Dict[str, Any], fenced: bool = True) -> str:
    body = json.dumps(payload, indent=2)
    return f"```json\n{body}\n```" if fenced else body


class SleepRecorder:
    """Awaitable sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeOracle:
    """
    Oracle returning scripted responses in order.

    Items may be OracleResponse objects, plain strings (wrapped into a
    response) or exceptions (raised).
    """

    def __init__(self, responses: List[Any]) -> None:
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, instructions: str, document: Optional[bytes] = None, **kwargs: Any):
        self.calls.append({"instructions": instructions, "document": document, **kwargs})
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, str):
            return OracleResponse(text=item, model="test-model", input_tokens=120, output_tokens=80)
        return item


class FakeStore:
    """Document store double recording every call."""

    def __init__(
        self,
        configured: bool = True,
        configs_response: Any = None,
        vendor_config: Optional[Dict[str, Any]] = None,
        files: Optional[List[Dict[str, Any]]] = None,
        file_contents: Optional[Dict[str, Dict[str, Any]]] = None,
        transactions: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        transaction_records: Optional[Dict[str, Dict[str, Any]]] = None
    ) -> None:
        self.is_configured = configured
        self.configs_response = configs_response
        self.vendor_config = vendor_config or {}
        self.files = files or []
        self.file_contents = file_contents or {}
        self.transactions = transactions or {}
        self.transaction_records = transaction_records or {}

        self.fail_upload = False
        self.fail_move = False
        self.fail_update = False
        self.uploads: List[Dict[str, Any]] = []
        self.saved: List[Dict[str, Any]] = []
        self.moved: List[tuple] = []
        self.searches: List[tuple] = []
        self.updates: List[tuple] = []
        self.closed = False

    async def fetch_configs(self) -> Dict[str, Any]:
        if isinstance(self.configs_response, Exception):
            raise self.configs_response
        return self.configs_response

    async def fetch_config(self, config_id: str) -> Dict[str, Any]:
        if not self.vendor_config:
            raise ConfigSourceError("config", f"no config returned for id {config_id}")
        return dict(self.vendor_config)

    async def upload_document(self, content, filename, extracted_data, primary_folder_id,
                              secondary_folder_id, subject="", now=None) -> Dict[str, Any]:
        self.uploads.append({
            "content": content,
            "filename": filename,
            "data": extracted_data,
            "pdf_folder": primary_folder_id,
            "json_folder": secondary_folder_id,
            "subject": subject,
        })
        if self.fail_upload:
            raise SinkError("upload", "HTTP 500")
        return {"success": True, "pdfFileId": 101, "jsonFileId": 102}

    async def list_folder_files(self, folder_id: str, file_type: str = "PDF", limit: int = 10):
        return [f for f in self.files][:limit]

    async def load_file(self, file_id: str) -> Dict[str, Any]:
        if file_id not in self.file_contents:
            raise DocumentStoreError("loadFile", f"no file returned for id {file_id}")
        return self.file_contents[file_id]

    async def save_file(self, name: str, contents: str, folder_id: str, file_type: str = "JSON") -> str:
        self.saved.append({"name": name, "contents": contents, "folder_id": folder_id})
        return "900"

    async def move_file(self, file_id: str, folder_id: str) -> str:
        if self.fail_move:
            raise DocumentStoreError("moveFile", "permission denied")
        self.moved.append((file_id, folder_id))
        return f"{file_id}-moved"

    async def search_transactions(self, record_type, created_on_or_after, filters=None):
        self.searches.append((record_type, created_on_or_after, filters))
        return list(self.transactions.get(record_type, []))

    async def load_transaction(self, record_type: str, record_id: str) -> Dict[str, Any]:
        key = f"{record_type}/{record_id}"
        if key not in self.transaction_records:
            raise DocumentStoreError("loadTransaction", f"no transaction {key}")
        return self.transaction_records[key]

    async def update_transaction(self, record_type: str, record_id: str, values: Dict[str, Any]) -> None:
        if self.fail_update:
            raise DocumentStoreError("updateTransaction", "locked")
        self.updates.append((record_type, record_id, values))

    async def close(self) -> None:
        self.closed = True


def pdf_file(file_id: str, name: str, content: bytes = b"%PDF-1.4 retry") -> Dict[str, Any]:
    """A loadFile response for a binary PDF."""
    return {"id": file_id, "name": name, "contents": base64.b64encode(content).decode("ascii")}


def build_email(
    sender: str = "Example Parts <no-replies@example.com>",
    subject: str = "Credits processed by Example for account 42",
    attachments=(("memo.pdf", b"%PDF-1.4 memo", "application", "pdf"),),
    message_id: Optional[str] = "<credit-42@example.com>"
) -> bytes:
    """Raw RFC 822 bytes of an email with the given attachments."""
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = "ap@example.com"
    msg["Subject"] = subject
    msg["Date"] = "Tue, 20 Jan 2026 10:00:00 +0000"
    if message_id:
        msg["Message-ID"] = message_id
    msg.set_content("Credit memos attached.")
    for filename, content, maintype, subtype in attachments:
        msg.add_attachment(content, maintype=maintype, subtype=subtype, filename=filename)
    return msg.as_bytes()


class FakeIMAP:
    """Minimal imaplib.IMAP4 double keyed by UID."""

    def __init__(self, messages: Optional[Dict[str, bytes]] = None) -> None:
        self.messages = dict(messages or {})
        self.seen = set()
        self.commands: List[tuple] = []
        self.logged_in = False
        self.logged_out = False
        self.fail_fetch: Optional[Exception] = None

    def login(self, user: str, password: str):
        self.logged_in = True
        return "OK", [b"Logged in"]

    def select(self, folder: str):
        return "OK", [str(len(self.messages)).encode()]

    def uid(self, command: str, *args: Any):
        self.commands.append((command,) + args)
        if command == "SEARCH":
            uids = [uid for uid in self.messages if uid not in self.seen]
            return "OK", [" ".join(uids).encode()]
        if command == "FETCH":
            if self.fail_fetch is not None:
                raise self.fail_fetch
            uid = args[0]
            raw = self.messages[uid]
            return "OK", [(f"{uid} (UID {uid} BODY[] {{{len(raw)}}}".encode(), raw), b")"]
        if command == "STORE":
            self.seen.add(args[0])
            return "OK", [b""]
        return "BAD", [b"unknown command"]

    def logout(self):
        self.logged_out = True
        return "BYE", [b"Logging out"]
