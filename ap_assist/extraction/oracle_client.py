"""
Extraction Oracle Client Module.

This module wraps the Anthropic Messages API as an opaque text oracle:
a PDF (as a base64 document block) and an instruction text go in, free
text expected to contain one JSON object comes out.

The SDK's own retries are disabled; rate limiting is handled by the
retry controller so that backoff stays visible and testable.

Author: AP Automation Team
"""

import base64
from typing import Any, Dict, List, Optional

import anthropic

from config import get_config
from ap_assist.utils.logger import get_logger
from ap_assist.utils.exceptions import OracleTransportError
from .extraction_result import OracleResponse

# Initialize module logger
logger = get_logger(__name__)


class ExtractionOracle:
    """
    Async client for the extraction oracle.

    Attributes:
        model: Default model identifier.
        max_tokens: Default output token cap.
        timeout: Default request timeout in seconds (None keeps the SDK default).

    Example:
        >>> oracle = ExtractionOracle()
        >>> response = await oracle.complete(prompt, document=pdf_bytes)
        >>> print(response.text, response.output_tokens)
    """

    PDF_MEDIA_TYPE = "application/pdf"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
        client: Optional[Any] = None
    ) -> None:
        """
        Initialize the oracle client.

        Args:
            api_key: Anthropic API key. If None, uses config.
            model: Model identifier. If None, uses config.
            max_tokens: Output token cap. If None, uses config.
            timeout: Request timeout in seconds. If None, uses config.
            client: Pre-built AsyncAnthropic-compatible client (for testing).
        """
        self.api_key = api_key or get_config("oracle.api_key")
        self.model = model or get_config("oracle.model", "claude-haiku-4-5-20251001")
        self.max_tokens = max_tokens or get_config("oracle.max_tokens", 4096)
        self.timeout = timeout if timeout is not None else get_config("oracle.request_timeout")
        self._client = client

    @property
    def client(self) -> Any:
        """Lazily created AsyncAnthropic client."""
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key, max_retries=0)
        return self._client

    def _build_content(self, instructions: str, document: Optional[bytes]) -> List[Dict[str, Any]]:
        content: List[Dict[str, Any]] = []
        if document is not None:
            content.append({
                "type": "document",
                "source": {
                    "type": "base64",
                    "media_type": self.PDF_MEDIA_TYPE,
                    "data": base64.b64encode(document).decode("utf-8"),
                },
            })
        content.append({"type": "text", "text": instructions})
        return content

    async def complete(
        self,
        instructions: str,
        document: Optional[bytes] = None,
        *,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None
    ) -> OracleResponse:
        """
        Send one request to the oracle.

        Args:
            instructions: Prompt text.
            document: Optional PDF bytes sent as a document block.
            system_prompt: Optional system prompt.
            model: Override of the default model.
            max_tokens: Override of the default token cap.
            timeout: Override of the default request timeout.

        Returns:
            OracleResponse with the joined text blocks and usage counters.

        Raises:
            OracleTransportError: If the API call fails for any reason.
        """
        request: Dict[str, Any] = {
            "model": model or self.model,
            "max_tokens": max_tokens or self.max_tokens,
            "messages": [
                {"role": "user", "content": self._build_content(instructions, document)}
            ],
        }
        if system_prompt:
            request["system"] = system_prompt

        request_timeout = timeout if timeout is not None else self.timeout
        if request_timeout is not None:
            request["timeout"] = request_timeout

        try:
            message = await self.client.messages.create(**request)
        except anthropic.APIError as e:
            status = getattr(e, "status_code", None)
            logger.warning(f"Oracle call failed (status={status}): {e}")
            raise OracleTransportError(str(e), status_code=status) from e

        text = "\n".join(
            block.text for block in message.content
            if getattr(block, "type", None) == "text"
        )
        usage = getattr(message, "usage", None)
        response = OracleResponse(
            text=text,
            model=getattr(message, "model", request["model"]),
            input_tokens=getattr(usage, "input_tokens", 0) or 0,
            output_tokens=getattr(usage, "output_tokens", 0) or 0,
            stop_reason=getattr(message, "stop_reason", None)
        )

        logger.info(
            f"Oracle response from {response.model} "
            f"({response.input_tokens} in / {response.output_tokens} out tokens)"
        )
        return response
