import asyncio
import json
from datetime import date

import openpyxl

from ap_assist.pipeline.batch_scheduler import BatchScheduler
from ap_assist.output_handler.excel_exporter import ExcelExporter
from ap_assist.utils.exceptions import OracleTransportError, ReportError
from ap_assist.validation.transaction_validator import (
    FIELD_PROCESSED, FIELD_VALIDATED, FIELD_VALIDATION_FAIL, FIELD_VALIDATION_NOTES,
    FIELD_VALIDATION_PASS, TransactionValidator, assess_report
)
from ap_assist.extraction.prompts import VALIDATION_SYSTEM_PROMPT
from fakes import FakeOracle, FakeStore, SleepRecorder

PASS_REVIEW = "All amounts reconcile.\nRESULT: PASS\nRECOMMENDATION: APPROVE"
CRITICAL_REVIEW = "CRITICAL: vendor does not match the source document.\nRECOMMENDATION: REJECT " + "x" * 4000


class FakeReporter:

    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    async def send(self, recipient, subject, body):
        if self.fail:
            raise ReportError(recipient, "SMTP host not configured")
        self.sent.append((recipient, subject, body))


def store_with_transactions():
    return FakeStore(
        transactions={
            "vendorcredit": [{"recordId": "1", "tranId": "VC-1"}, {"recordId": "2", "tranId": "VC-2"}],
            "journalentry": [{"recordId": "3", "tranId": "JE-3"}],
        },
        transaction_records={
            "vendorcredit/1": {"id": "1", "entity": "Example Parts", "sourceJsonFileId": "55"},
            "vendorcredit/2": {"id": "2", "entity": "Other Vendor"},
        },
        file_contents={"55": {"id": "55", "contents": json.dumps({"memoNumber": "CM-1001"})}}
    )


def validator(store, responses, tmp_path, reporter=None, progress=None):
    sleep = SleepRecorder()
    return TransactionValidator(
        store,
        FakeOracle(responses),
        scheduler=BatchScheduler(group_size=3, inter_group_delay=0, sleep=sleep, progress=progress),
        exporter=ExcelExporter(output_dir=str(tmp_path)),
        reporter=reporter,
        record_types=["vendorcredit", "journalentry"],
        custom_rules=[],
        model="validation-model",
        sleep=sleep
    )


def test_assess_report():
    assert assess_report(PASS_REVIEW) == (True, False)
    assert assess_report("result: pass, but please approve later. Critical typo.") == (True, True)
    assert assess_report("Needs review") == (False, False)
    assert assess_report("") == (False, False)


def test_find_transactions_uses_cutoff_and_filters(tmp_path):
    store = store_with_transactions()
    checker = validator(store, [], tmp_path)

    found = asyncio.run(checker.find_transactions(2, today=date(2026, 1, 21)))

    assert [t["recordType"] for t in found] == ["vendorcredit", "vendorcredit", "journalentry"]
    record_type, cutoff, filters = store.searches[0]
    assert (record_type, cutoff) == ("vendorcredit", "2026-01-19")
    assert filters == {FIELD_PROCESSED: True, FIELD_VALIDATED: False}


def test_run_validates_flags_and_reports(tmp_path):
    store = store_with_transactions()
    reporter = FakeReporter()
    checker = validator(store, [PASS_REVIEW, CRITICAL_REVIEW], tmp_path, reporter)

    run = asyncio.run(checker.run(
        validation_type="amounts", days_back=1, email_recipient="ap@example.com", auto_flag=True
    ))

    passed, critical, missing = run.results
    assert passed.success and passed.is_passed and not passed.has_critical_issues
    assert critical.success and critical.has_critical_issues and critical.flagged
    assert not missing.success
    assert "journalentry/3" in missing.error

    call = checker.oracle.calls[0]
    assert call["document"] is None
    assert call["system_prompt"] == VALIDATION_SYSTEM_PROMPT
    assert call["model"] == "validation-model"
    assert "CM-1001" in call["instructions"]

    flag_updates = [u for u in store.updates if FIELD_VALIDATION_FAIL in u[2]]
    assert len(flag_updates) == 1
    assert flag_updates[0][:2] == ("vendorcredit", "2")
    assert len(flag_updates[0][2][FIELD_VALIDATION_NOTES]) == 3000

    validated = [u for u in store.updates if FIELD_VALIDATED in u[2]]
    assert [(u[1], u[2][FIELD_VALIDATION_PASS]) for u in validated] == [("1", True), ("2", False)]

    assert (run.summary.total, run.summary.passed, run.summary.failed, run.summary.errors) == (3, 1, 1, 1)
    assert run.summary.critical_issues == 1
    assert run.summary.pass_rate == "33.3%"

    assert run.emailed
    recipient, subject, body = reporter.sent[0]
    assert recipient == "ap@example.com"
    assert subject.startswith("AP Assist Transaction Validation Report - ")
    assert "Transaction: VC-2 (ID: 2)" in body

    workbook = openpyxl.load_workbook(run.excel_path)
    assert workbook.sheetnames == ["Validation Results", "Summary"]


def test_critical_issues_not_flagged_without_auto_flag(tmp_path):
    store = FakeStore(
        transactions={"vendorcredit": [{"recordId": "2", "tranId": "VC-2"}]},
        transaction_records={"vendorcredit/2": {"id": "2"}}
    )
    checker = validator(store, [CRITICAL_REVIEW], tmp_path)
    checker.record_types = ["vendorcredit"]

    run = asyncio.run(checker.run(days_back=1, email_recipient="", auto_flag=False))

    assert run.results[0].has_critical_issues
    assert not run.results[0].flagged
    assert all(FIELD_VALIDATION_FAIL not in u[2] for u in store.updates)


def test_oracle_failure_is_an_error_result(tmp_path):
    store = FakeStore(
        transactions={"vendorcredit": [{"recordId": "1", "tranId": "VC-1"}]},
        transaction_records={"vendorcredit/1": {"id": "1"}}
    )
    checker = validator(store, [OracleTransportError("Error code: 500 - api_error")], tmp_path)
    checker.record_types = ["vendorcredit"]

    run = asyncio.run(checker.run(days_back=1, email_recipient="", auto_flag=False))

    assert run.summary.errors == 1
    assert "api_error" in run.results[0].error
    assert store.updates == []


def test_oracle_failure_counts_as_failed_item(tmp_path):
    store = FakeStore(
        transactions={"vendorcredit": [{"recordId": "1", "tranId": "VC-1"}]},
        transaction_records={"vendorcredit/1": {"id": "1"}}
    )
    snapshots = []
    checker = validator(store, [OracleTransportError("Error code: 500 - api_error")], tmp_path,
                        progress=lambda counters, outcome: snapshots.append((counters, outcome)))
    checker.record_types = ["vendorcredit"]

    asyncio.run(checker.run(days_back=1, email_recipient="", auto_flag=False))

    counters, outcome = snapshots[-1]
    assert (counters.processed, counters.succeeded, counters.failed) == (1, 0, 1)
    assert outcome.name == "vendorcredit VC-1"
    assert not outcome.success
    assert "api_error" in outcome.error


def test_email_failure_does_not_abort_run(tmp_path):
    store = FakeStore(
        transactions={"vendorcredit": [{"recordId": "1", "tranId": "VC-1"}]},
        transaction_records={"vendorcredit/1": {"id": "1"}}
    )
    checker = validator(store, [PASS_REVIEW], tmp_path, FakeReporter(fail=True))
    checker.record_types = ["vendorcredit"]

    run = asyncio.run(checker.run(days_back=1, email_recipient="ap@example.com", auto_flag=False))

    assert not run.emailed
    assert run.summary.passed == 1
    assert run.excel_path is not None


def test_no_transactions(tmp_path):
    reporter = FakeReporter()
    checker = validator(FakeStore(), [], tmp_path, reporter)

    run = asyncio.run(checker.run(days_back=1, email_recipient="ap@example.com"))

    assert run.results == []
    assert run.summary.total == 0
    assert reporter.sent == []
    assert run.excel_path is None
