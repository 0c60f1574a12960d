import asyncio
import json
from datetime import datetime

import pytest

from ap_assist.extraction.extraction_result import OracleResponse
from ap_assist.extraction.prompts import DATA_EXTRACTION_SYSTEM_PROMPT, GENERIC_EXTRACTION_PROMPT
from ap_assist.pipeline.batch_scheduler import BatchScheduler
from ap_assist.pipeline.retry_folder import RETRY_METADATA_KEY, RetryFolderProcessor, json_filename
from ap_assist.utils.exceptions import ConfigurationError, OracleTransportError
from fakes import VALID_MEMO, FakeOracle, FakeStore, SleepRecorder, memo_text, pdf_file

VENDOR = {
    "vendorName": "Example Parts",
    "retryFolderId": "5",
    "jsonFolderId": "6",
    "pdfFolderId": "7",
    "aiPrompt": "Extract the credit memo.",
}


def processor(responses, store):
    sleep = SleepRecorder()
    return RetryFolderProcessor(
        store,
        FakeOracle(responses),
        scheduler=BatchScheduler(group_size=2, inter_group_delay=0, sleep=sleep),
        config_id="3",
        max_files=10,
        sleep=sleep
    )


def store_with(*names, vendor=VENDOR):
    files = [{"id": str(11 + i), "name": name} for i, name in enumerate(names)]
    contents = {f["id"]: pdf_file(f["id"], f["name"]) for f in files}
    return FakeStore(vendor_config=vendor, files=files, file_contents=contents)


def test_json_filename():
    assert json_filename("Credit_0042.PDF") == "Credit_0042.json"
    assert json_filename("memo.pdf") == "memo.json"
    assert json_filename("scan") == "scan.json"


def test_reprocessed_pdf_is_saved_and_moved():
    store = store_with("Credit_0042.PDF")
    retry = processor([memo_text(VALID_MEMO)], store)

    report = asyncio.run(retry.run())

    assert report.counters.succeeded == 1
    saved = store.saved[0]
    assert (saved["name"], saved["folder_id"]) == ("Credit_0042.json", "6")
    data = json.loads(saved["contents"])
    assert data["memoNumber"] == "CM-1001"
    metadata = data[RETRY_METADATA_KEY]
    assert metadata["processType"] == "AP_ASSIST_RETRY"
    assert metadata["originalPdfFileId"] == "11"
    assert metadata["configId"] == "3"
    assert metadata["claudeModel"] == "test-model"
    assert (metadata["inputTokens"], metadata["outputTokens"]) == (120, 80)
    assert metadata["processingDuration"].endswith("ms")
    assert store.moved == [("11", "7")]
    assert report.outcomes[0].value == {
        "pdfFileId": "11-moved", "jsonFileId": "900", "jsonFileName": "Credit_0042.json"
    }


def test_vendor_prompt_and_system_prompt_are_sent():
    store = store_with("a.pdf")
    retry = processor([memo_text(VALID_MEMO)], store)

    asyncio.run(retry.run())

    call = retry.oracle.calls[0]
    assert call["instructions"] == "Extract the credit memo."
    assert call["document"] == b"%PDF-1.4 retry"
    assert call["system_prompt"] == DATA_EXTRACTION_SYSTEM_PROMPT


def test_generic_prompt_without_vendor_prompt():
    vendor = dict(VENDOR, aiPrompt="")
    store = store_with("a.pdf", vendor=vendor)
    retry = processor([memo_text(VALID_MEMO)], store)

    asyncio.run(retry.run())

    assert retry.oracle.calls[0]["instructions"] == GENERIC_EXTRACTION_PROMPT


def test_missing_folder_ids():
    vendor = {"vendorName": "Example Parts", "retryFolderId": "5"}
    retry = processor([], store_with(vendor=vendor))

    with pytest.raises(ConfigurationError) as exc_info:
        asyncio.run(retry.run())
    assert exc_info.value.missing == ["jsonFolderId", "pdfFolderId"]


def test_move_failure_keeps_original_id():
    store = store_with("memo.pdf")
    store.fail_move = True
    retry = processor([memo_text(VALID_MEMO)], store)

    report = asyncio.run(retry.run())

    assert report.counters.succeeded == 1
    assert report.outcomes[0].value["pdfFileId"] == "11"
    assert len(store.saved) == 1


def test_empty_folder():
    store = store_with()
    retry = processor([], store)

    report = asyncio.run(retry.run())

    assert report.outcomes == []
    assert report.counters.processed == 0
    assert store.saved == []


def test_failures_are_reported_per_file():
    store = store_with("good.pdf", "bad.pdf", "down.pdf")
    retry = processor([
        memo_text(VALID_MEMO),
        "I could not read this document.",
        OracleTransportError("Error code: 500 - api_error"),
    ], store)

    report = asyncio.run(retry.run())

    assert report.counters.processed == 3
    assert report.counters.succeeded == 1
    assert report.counters.failed == 2
    assert [outcome.name for outcome in report.failures] == ["bad.pdf", "down.pdf"]
    assert [saved["name"] for saved in store.saved] == ["good.json"]
    assert store.moved == [("11", "7")]


def test_build_metadata_format():
    retry = processor([], FakeStore())
    response = OracleResponse(text="{}", model="claude-test", input_tokens=5, output_tokens=7)

    metadata = retry.build_metadata(
        {"id": 42, "name": "x.pdf"}, VENDOR, response, 1234,
        now=datetime(2026, 1, 21, 14, 30, 22, 123000)
    )

    assert metadata["retryTimestamp"] == "2026-01-21T14:30:22.123Z"
    assert metadata["originalPdfFileId"] == "42"
    assert metadata["processingDuration"] == "1234ms"
    assert metadata["vendorName"] == "Example Parts"
    assert metadata["retryReason"] == "Manual retry - poor initial JSON extraction"
