from ap_assist.routing.rules import (
    Destination, RoutingRule, RuleBook, match_rule, rule_from_settings, rules_from_settings
)


def rule(name, sender, subject, enabled=True):
    return RoutingRule(name=name, sender_match=sender, subject_match=subject, enabled=enabled)


class TestMatchRule:

    rules = [
        rule("disabled", "vendor@example.com", "Credit", enabled=False),
        rule("credits", "vendor@example.com", "Credit"),
        rule("catch_all", "vendor@example.com", ""),
    ]

    def test_first_enabled_match_wins(self):
        assert match_rule(self.rules, "vendor@example.com", "Credit memo 12").name == "credits"

    def test_later_rule_matches_when_earlier_does_not(self):
        assert match_rule(self.rules, "vendor@example.com", "Invoice 12").name == "catch_all"

    def test_sender_is_case_insensitive(self):
        found = match_rule(self.rules, "Vendor Billing <VENDOR@Example.com>", "Credit memo")
        assert found.name == "credits"

    def test_subject_is_case_sensitive(self):
        only_credit = [rule("credits", "vendor@example.com", "Credit")]
        assert match_rule(only_credit, "vendor@example.com", "credit memo") is None

    def test_no_match(self):
        assert match_rule(self.rules, "someone@else.com", "Credit") is None

    def test_missing_headers(self):
        assert match_rule(self.rules, None, None) is None


class TestRuleBook:

    def test_replace_swaps_whole_list(self):
        book = RuleBook([rule("old", "a@example.com", "A")])
        before = book.rules

        book.replace([rule("new1", "b@example.com", "B"), rule("new2", "c@example.com", "C")])

        assert [r.name for r in before] == ["old"]
        assert [r.name for r in book.rules] == ["new1", "new2"]
        assert len(book) == 2

    def test_enabled_filters_disabled_rules(self):
        book = RuleBook([rule("on", "a", "A"), rule("off", "b", "B", enabled=False)])
        assert [r.name for r in book.enabled()] == ["on"]

    def test_match_uses_current_rules(self):
        book = RuleBook([rule("on", "a@example.com", "A")])
        assert book.match("a@example.com", "A1").name == "on"
        assert book.match("z@example.com", "A1") is None


class TestRulesFromSettings:

    def test_default_rules_from_config(self):
        rules = rules_from_settings()
        assert [r.name for r in rules] == ["example_credits"]
        assert rules[0].sender_match == "no-replies@example.com"
        assert rules[0].prompt_template == "credit_memo"
        assert rules[0].destination == Destination()

    def test_entry_with_folders(self):
        built = rule_from_settings({
            "name": "vendor",
            "sender_match": "v@example.com",
            "subject_match": "Credits",
            "primary_folder_id": "9",
            "secondary_folder_id": "10",
            "enabled": False,
        })
        assert built.destination == Destination("9", "10")
        assert not built.enabled

    def test_describe(self):
        assert rule("r", "v@example.com", "Credits").describe() == (
            'r: FROM "v@example.com" + SUBJECT contains "Credits"'
        )
