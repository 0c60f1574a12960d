"""
Raw Document Data Class.

A RawDocument is one PDF handed to the pipeline, together with where it
came from (the containing email or the document store folder).
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict


@dataclass(frozen=True)
class RawDocument:
    """
    Immutable input item of the extraction pipeline.

    Attributes:
        content: Raw PDF bytes.
        filename: Original filename.
        metadata: Source metadata. Email documents carry ``subject``,
            ``sender``, ``date``, ``message_id`` and ``uid``; store
            documents carry ``file_id`` and ``folder_id``.
    """
    content: bytes
    filename: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def stem(self) -> str:
        """Filename without its extension."""
        return Path(self.filename).stem

    @property
    def subject(self) -> str:
        return self.metadata.get("subject") or "No Subject"

    def __repr__(self) -> str:
        return f"RawDocument(filename={self.filename!r}, size={self.size})"
