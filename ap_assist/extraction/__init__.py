"""
Extraction Module for the AP Assist Pipeline.

This module turns a PDF into structured data using the extraction oracle:
    - Oracle client (Anthropic Messages API)
    - Prompt library and corrective prompts
    - Tolerant JSON response parsing
    - Rate-limit backoff and one corrective validation retry
"""

from .extraction_result import ExtractionResult, OracleResponse, ProcessingAttempt
from .response_parser import parse_json_response, try_parse_json_response
from .prompts import PromptLibrary, build_validation_prompt
from .oracle_client import ExtractionOracle
from .retry import ExtractionController, ExtractionOutcome, call_with_backoff

__all__ = [
    'ExtractionResult',
    'OracleResponse',
    'ProcessingAttempt',
    'parse_json_response',
    'try_parse_json_response',
    'PromptLibrary',
    'build_validation_prompt',
    'ExtractionOracle',
    'ExtractionController',
    'ExtractionOutcome',
    'call_with_backoff'
]
