import asyncio

import pytest

from ap_assist.routing.config_refresh import ConfigRefresher, rule_from_record, rules_from_response
from ap_assist.routing.rules import Destination, RoutingRule, RuleBook
from ap_assist.utils.exceptions import ConfigSourceError
from fakes import FakeStore

INITIAL = [RoutingRule(name="example_credits", sender_match="no-replies@example.com",
                       subject_match="Credits processed by Example")]


def record(**overrides):
    data = {
        "id": 3,
        "displayName": "Example Parts - Credits",
        "emailFrom": "credits@parts.example.com",
        "emailSubjectContains": "Credit Memo",
        "claudePrompt": "",
        "pdfFolderId": 9,
        "jsonFolderId": 10,
    }
    data.update(overrides)
    return data


def refresh(response):
    book = RuleBook(INITIAL)
    refresher = ConfigRefresher(FakeStore(configs_response=response), book, interval=600)
    replaced = asyncio.run(refresher.refresh_once())
    return replaced, book, refresher


class TestRuleFromRecord:

    def test_builds_rule(self):
        built = rule_from_record(record(), "credit_memo")
        assert built.name == "example_parts_credits"
        assert built.sender_match == "credits@parts.example.com"
        assert built.subject_match == "Credit Memo"
        assert built.prompt_template == "credit_memo"
        assert built.destination == Destination("9", "10")
        assert built.config_id == "3"

    def test_custom_prompt_is_kept(self):
        built = rule_from_record(record(claudePrompt="Extract the totals only."), "credit_memo")
        assert built.prompt_template == "Extract the totals only."

    def test_name_falls_back_to_id(self):
        assert rule_from_record(record(displayName=""), "credit_memo").name == "3"

    @pytest.mark.parametrize("field", ["emailFrom", "emailSubjectContains"])
    def test_missing_match_field_is_rejected(self, field):
        with pytest.raises(ConfigSourceError):
            rule_from_record(record(**{field: ""}), "credit_memo")

    def test_non_object_record_is_rejected(self):
        with pytest.raises(ConfigSourceError):
            rule_from_record("not a record", "credit_memo")


def test_rules_from_response_requires_configs_list():
    with pytest.raises(ConfigSourceError):
        rules_from_response({"success": True, "configs": "nope"}, "credit_memo")


class TestConfigRefresher:

    def test_successful_refresh_replaces_rules(self):
        replaced, book, refresher = refresh({
            "success": True,
            "configs": [record(), record(id=4, displayName="Other", enabled=False)],
        })

        assert replaced
        assert [r.name for r in book.rules] == ["example_parts_credits"]
        assert refresher.refresh_count == 1

    def test_unsuccessful_response_keeps_rules(self):
        replaced, book, _ = refresh({"success": False, "error": "INVALID_LOGIN"})
        assert not replaced
        assert book.rules == tuple(INITIAL)

    def test_malformed_record_keeps_rules(self):
        replaced, book, _ = refresh({"success": True, "configs": [record(), record(emailFrom=None)]})
        assert not replaced
        assert book.rules == tuple(INITIAL)

    def test_no_enabled_configs_keeps_rules(self):
        replaced, book, _ = refresh({"success": True, "configs": [record(enabled=False)]})
        assert not replaced
        assert book.rules == tuple(INITIAL)

    def test_empty_configs_keeps_rules(self):
        replaced, book, _ = refresh({"success": True, "configs": []})
        assert not replaced
        assert book.rules == tuple(INITIAL)

    @pytest.mark.parametrize("error", [
        ConfigSourceError("configs", "HTTP 503", status=503),
        RuntimeError("connection reset"),
    ])
    def test_fetch_errors_keep_rules(self, error):
        replaced, book, _ = refresh(error)
        assert not replaced
        assert book.rules == tuple(INITIAL)

    def test_run_forever_refreshes_every_interval(self):
        class StopLoop(Exception):
            pass

        delays = []

        async def sleep(seconds):
            delays.append(seconds)
            if len(delays) == 2:
                raise StopLoop()

        book = RuleBook(INITIAL)
        store = FakeStore(configs_response={"success": True, "configs": [record()]})
        refresher = ConfigRefresher(store, book, interval=600, sleep=sleep)

        with pytest.raises(StopLoop):
            asyncio.run(refresher.run_forever())

        assert delays == [600, 600]
        assert refresher.refresh_count == 2

    def test_interval_from_config(self):
        refresher = ConfigRefresher(FakeStore(), RuleBook())
        assert refresher.interval == 600.0
