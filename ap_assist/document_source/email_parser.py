"""
Email Parser Module.

Turns raw RFC 822 bytes fetched from the mailbox into a MailMessage and
yields the PDF attachments as RawDocuments.

Author: AP Automation Team
"""

from dataclasses import dataclass, field
from email import message_from_bytes, policy
from email.message import EmailMessage
from typing import Iterator, List, Optional

from ap_assist.utils.logger import get_logger
from .document import RawDocument

# Initialize module logger
logger = get_logger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
OCTET_STREAM = "application/octet-stream"


@dataclass
class Attachment:
    """One attached file of an email."""
    filename: str
    content_type: str
    content: bytes

    @property
    def is_pdf(self) -> bool:
        """PDF by content type, or a .pdf name sent as a generic binary."""
        if self.content_type == PDF_CONTENT_TYPE:
            return True
        return self.content_type == OCTET_STREAM and self.filename.lower().endswith(".pdf")


@dataclass
class MailMessage:
    """
    Parsed email with the headers used for routing.

    Attributes:
        uid: IMAP UID of the message.
        message_id: Message-ID header (falls back to "uid:<uid>").
        sender: From header text.
        subject: Subject header text.
        date: Date header text.
        attachments: Attached files in message order.
    """
    uid: str
    message_id: str
    sender: str = ""
    subject: str = ""
    date: str = ""
    attachments: List[Attachment] = field(default_factory=list)

    @property
    def pdf_attachments(self) -> List[Attachment]:
        return [att for att in self.attachments if att.is_pdf]


def _header(msg: EmailMessage, name: str) -> str:
    value = msg.get(name)
    return str(value).strip() if value is not None else ""


def parse_message(raw: bytes, uid: str) -> MailMessage:
    """
    Parse raw message bytes.

    Args:
        raw: Full RFC 822 message as fetched with BODY.PEEK[].
        uid: IMAP UID of the message.

    Returns:
        MailMessage instance.
    """
    msg = message_from_bytes(raw, policy=policy.default)

    attachments: List[Attachment] = []
    for part in msg.walk():
        if part.is_multipart():
            continue
        filename = part.get_filename()
        disposition = part.get_content_disposition()
        if not filename and disposition != "attachment":
            continue

        payload: Optional[bytes] = part.get_payload(decode=True)
        attachments.append(Attachment(
            filename=filename or "attachment",
            content_type=part.get_content_type(),
            content=payload or b""
        ))

    message_id = _header(msg, "Message-ID") or f"uid:{uid}"
    parsed = MailMessage(
        uid=str(uid),
        message_id=message_id,
        sender=_header(msg, "From"),
        subject=_header(msg, "Subject"),
        date=_header(msg, "Date"),
        attachments=attachments
    )
    logger.debug(
        f"Parsed message {parsed.uid}: {len(attachments)} attachment(s), "
        f"subject={parsed.subject!r}"
    )
    return parsed


def pdf_documents(message: MailMessage) -> Iterator[RawDocument]:
    """
    Yield a RawDocument for every PDF attachment of ``message``.

    Example:
        >>> for document in pdf_documents(parse_message(raw, "42")):
        ...     print(document.filename)
    """
    for attachment in message.pdf_attachments:
        yield RawDocument(
            content=attachment.content,
            filename=attachment.filename,
            metadata={
                "subject": message.subject,
                "sender": message.sender,
                "date": message.date,
                "message_id": message.message_id,
                "uid": message.uid,
            }
        )
