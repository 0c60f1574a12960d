import pytest

from ap_assist.extraction.response_parser import (
    extract_json_region, parse_json_response, strip_json_fence, try_parse_json_response
)
from ap_assist.utils.exceptions import ResponseParseError


class TestStripJsonFence:

    def test_returns_fence_content(self):
        assert strip_json_fence('Result:\n```json\n{"a": 1}\n```\nThanks') == '{"a": 1}'

    def test_text_without_fence_is_unchanged(self):
        assert strip_json_fence('{"a": 1}') == '{"a": 1}'

    def test_unclosed_fence_runs_to_end(self):
        assert strip_json_fence('```json\n{"a": 1}') == '{"a": 1}'


class TestParseJsonResponse:

    def test_fenced_object(self):
        assert parse_json_response('```json\n{"a": 1}\n```') == {"a": 1}

    def test_object_followed_by_bold_note(self):
        text = '{"a": 1}\n\n**Note:** all lines were found'
        assert parse_json_response(text) == {"a": 1}

    def test_object_followed_by_paragraph(self):
        text = 'Here is the data:\n{"a": {"b": [1, 2]}}\n\nLet me know if anything is missing.'
        assert parse_json_response(text) == {"a": {"b": [1, 2]}}

    def test_nested_objects_are_kept_whole(self):
        text = '{\n  "lineItems": [\n    {"x": 1},\n    {"x": 2}\n  ]\n}'
        assert parse_json_response(text) == {"lineItems": [{"x": 1}, {"x": 2}]}

    def test_prose_without_object_fails(self):
        with pytest.raises(ResponseParseError):
            parse_json_response("I could not read this document.")

    def test_empty_text_fails(self):
        with pytest.raises(ResponseParseError):
            parse_json_response("")

    def test_malformed_object_fails(self):
        with pytest.raises(ResponseParseError) as exc_info:
            parse_json_response('{"a": }')
        assert "Could not parse JSON" in exc_info.value.message

    def test_try_parse_returns_none_on_failure(self):
        assert try_parse_json_response("no json here") is None
        assert try_parse_json_response('{"ok": true}') == {"ok": True}


def test_extract_json_region_requires_terminator():
    assert extract_json_region('{"a": 1} trailing words') is None
    assert extract_json_region('{"a": 1}   ') == '{"a": 1}'
