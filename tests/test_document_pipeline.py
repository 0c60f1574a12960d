import asyncio
import threading

from ap_assist.document_source.document import RawDocument
from ap_assist.extraction.prompts import PromptLibrary
from ap_assist.extraction.retry import ExtractionController
from ap_assist.output_handler.handler import OutputHandler
from ap_assist.output_handler.ledger import LedgerEntry, ProcessingLedger
from ap_assist.output_handler.local_store import LocalStore
from ap_assist.pipeline.document_pipeline import DocumentPipeline, VALIDATION_FLAG_KEY
from ap_assist.routing.rules import Destination, RoutingRule
from ap_assist.utils.exceptions import OracleTransportError
from fakes import INVALID_MEMO, VALID_MEMO, FakeOracle, FakeStore, SleepRecorder, memo_text

RULE = RoutingRule(name="example_credits", sender_match="no-replies@example.com",
                   subject_match="Credits processed by Example", prompt_template="credit_memo",
                   destination=Destination("9", "10"))
DOCUMENT = RawDocument(content=b"%PDF-1.4", filename="memo.pdf",
                       metadata={"message_id": "<m1@example.com>", "subject": "Credits"})


def build(responses, tmp_path, store=None):
    oracle = FakeOracle(responses)
    store = store or FakeStore()
    ledger = ProcessingLedger(str(tmp_path / "ledger.db"))
    pipeline = DocumentPipeline(
        ExtractionController(oracle, sleep=SleepRecorder()),
        PromptLibrary(),
        OutputHandler(store=store, local_store=LocalStore(save_pdfs=False, save_results=False)),
        ledger
    )
    return pipeline, oracle, store, ledger


def test_valid_document_is_uploaded_and_recorded(tmp_path):
    pipeline, oracle, store, ledger = build([memo_text(VALID_MEMO)], tmp_path)

    outcome = asyncio.run(pipeline.process(DOCUMENT, RULE))

    assert outcome.success
    assert not outcome.flagged
    assert oracle.calls[0]["instructions"].endswith("Document: memo.pdf")
    upload = store.uploads[0]
    assert upload["data"]["memoNumber"] == "CM-1001"
    assert VALIDATION_FLAG_KEY not in upload["data"]
    assert (upload["pdf_folder"], upload["json_folder"]) == ("9", "10")
    assert ledger.is_processed("<m1@example.com>", "memo.pdf")


def test_invalid_after_retry_is_persisted_flagged(tmp_path):
    pipeline, oracle, store, ledger = build([memo_text(INVALID_MEMO), memo_text(INVALID_MEMO)], tmp_path)

    outcome = asyncio.run(pipeline.process(DOCUMENT, RULE))

    assert outcome.success
    assert outcome.flagged
    assert outcome.error.startswith("Invalid bill numbers found:")
    flag = store.uploads[0]["data"][VALIDATION_FLAG_KEY]
    assert flag["flagged"] is True
    assert flag["reason"] == outcome.error
    assert [a["prompt_variant"] for a in flag["attempts"]] == ["initial", "corrective"]
    assert ledger.get_statistics()["flagged"] == 1


def test_oracle_failure_is_a_failed_outcome(tmp_path):
    pipeline, _, store, ledger = build([OracleTransportError("Error code: 500 - api_error")], tmp_path)

    outcome = asyncio.run(pipeline.process(DOCUMENT, RULE))

    assert not outcome.success
    assert "api_error" in outcome.error
    assert store.uploads == []
    assert not ledger.is_processed("<m1@example.com>", "memo.pdf")
    assert ledger.get_statistics()["failed"] == 1


def test_upload_failure_is_a_failed_outcome(tmp_path):
    store = FakeStore()
    store.fail_upload = True
    pipeline, _, _, ledger = build([memo_text(VALID_MEMO)], tmp_path, store)

    outcome = asyncio.run(pipeline.process(DOCUMENT, RULE))

    assert not outcome.success
    assert not ledger.is_processed("<m1@example.com>", "memo.pdf")


def test_already_processed_document_is_skipped(tmp_path):
    pipeline, oracle, store, ledger = build([], tmp_path)
    ledger.record(LedgerEntry("<m1@example.com>", "memo.pdf"))

    outcome = asyncio.run(pipeline.process(DOCUMENT, RULE))

    assert outcome.success
    assert outcome.value == "duplicate"
    assert oracle.calls == []
    assert store.uploads == []


def test_rejected_document_is_persisted_with_empty_items(tmp_path):
    rejected = {"isCreditMemo": False, "lineItems": None, "validationError": "This is an invoice"}
    pipeline, _, store, _ = build([memo_text(rejected)], tmp_path)

    outcome = asyncio.run(pipeline.process(DOCUMENT, RULE))

    assert outcome.success
    data = store.uploads[0]["data"]
    assert data["isCreditMemo"] is False
    assert data["lineItems"] == []
    assert data["validationError"] == "This is an invoice"


class ThreadTrackingLedger(ProcessingLedger):

    def __init__(self, db_path):
        super().__init__(db_path)
        self.threads = set()

    def is_processed(self, message_id, filename):
        self.threads.add(threading.get_ident())
        return super().is_processed(message_id, filename)

    def record(self, entry):
        self.threads.add(threading.get_ident())
        super().record(entry)


def test_ledger_calls_run_off_the_event_loop_thread(tmp_path):
    ledger = ThreadTrackingLedger(str(tmp_path / "ledger.db"))
    pipeline = DocumentPipeline(
        ExtractionController(FakeOracle([memo_text(VALID_MEMO)]), sleep=SleepRecorder()),
        PromptLibrary(),
        OutputHandler(store=FakeStore(), local_store=LocalStore(save_pdfs=False, save_results=False)),
        ledger
    )

    outcome = asyncio.run(pipeline.process(DOCUMENT, RULE))

    assert outcome.success
    assert ledger.threads
    assert threading.get_ident() not in ledger.threads
