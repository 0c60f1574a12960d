"""
Routing Rules Module.

An inbound email is routed by the first enabled rule whose sender
substring and subject substring both match. Rules are immutable values
held in an ordered tuple; the rule book replaces the whole tuple in one
assignment so a matcher never sees a half-updated list.

Author: AP Automation Team
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from config import get_config
from ap_assist.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)


@dataclass(frozen=True)
class Destination:
    """Document store folders receiving the PDF and the extracted JSON."""
    primary_folder_id: Optional[str] = None
    secondary_folder_id: Optional[str] = None


@dataclass(frozen=True)
class RoutingRule:
    """
    Predicate mapping an inbound document to a destination and a prompt.

    Attributes:
        name: Identifier used in logs and the ledger.
        sender_match: Substring of the From header (case-insensitive).
        subject_match: Substring of the subject (case-sensitive).
        enabled: Disabled rules never match.
        prompt_template: Prompt library key or literal prompt text.
        destination: Target folders in the document store.
        config_id: Id of the vendor configuration record, if any.
    """
    name: str
    sender_match: str
    subject_match: str
    enabled: bool = True
    prompt_template: str = ""
    destination: Destination = field(default_factory=Destination)
    config_id: Optional[str] = None

    def matches(self, sender: str, subject: str) -> bool:
        """Whether this rule accepts the given sender and subject."""
        if not self.enabled:
            return False
        sender_ok = self.sender_match.lower() in (sender or "").lower()
        subject_ok = self.subject_match in (subject or "")
        return sender_ok and subject_ok

    def describe(self) -> str:
        return f'{self.name}: FROM "{self.sender_match}" + SUBJECT contains "{self.subject_match}"'


def match_rule(
    rules: Sequence[RoutingRule],
    sender: str,
    subject: str
) -> Optional[RoutingRule]:
    """
    Return the first rule in list order matching sender and subject.

    Args:
        rules: Ordered rules.
        sender: From header text.
        subject: Subject header text.

    Returns:
        The first matching enabled rule, or None.

    Example:
        >>> rule = match_rule(rules, "no-replies@example.com", "Credits processed by Example for 123")
    """
    for rule in rules:
        if rule.matches(sender, subject):
            return rule
    return None


class RuleBook:
    """
    Holder of the current routing rules.

    The rules are an immutable tuple; ``replace`` swaps the reference so
    concurrent readers see either the old or the new list, never a mix.

    Example:
        >>> book = RuleBook(rules_from_settings())
        >>> rule = book.match(sender, subject)
    """

    def __init__(self, rules: Iterable[RoutingRule] = ()) -> None:
        self._rules: Tuple[RoutingRule, ...] = tuple(rules)

    @property
    def rules(self) -> Tuple[RoutingRule, ...]:
        return self._rules

    def replace(self, rules: Iterable[RoutingRule]) -> None:
        """Replace the whole rule list."""
        self._rules = tuple(rules)

    def match(self, sender: str, subject: str) -> Optional[RoutingRule]:
        rule = match_rule(self._rules, sender, subject)
        if rule is None:
            logger.info(f"No matching rule for FROM: {sender}, SUBJECT: {subject}")
        else:
            logger.info(f"Matched rule: {rule.name}")
        return rule

    def enabled(self) -> List[RoutingRule]:
        return [rule for rule in self._rules if rule.enabled]

    def __len__(self) -> int:
        return len(self._rules)


def rule_from_settings(entry: Dict[str, Any]) -> RoutingRule:
    """Build a rule from one ``routing.default_rules`` entry."""
    return RoutingRule(
        name=entry["name"],
        sender_match=entry.get("sender_match", ""),
        subject_match=entry.get("subject_match", ""),
        enabled=bool(entry.get("enabled", True)),
        prompt_template=entry.get("prompt_template") or "",
        destination=Destination(
            primary_folder_id=entry.get("primary_folder_id") or None,
            secondary_folder_id=entry.get("secondary_folder_id") or None
        ),
        config_id=entry.get("config_id")
    )


def rules_from_settings(entries: Optional[List[Dict[str, Any]]] = None) -> List[RoutingRule]:
    """
    Load the hardcoded default rules used until the first refresh.

    Args:
        entries: Rule dictionaries. If None, uses ``routing.default_rules``.

    Returns:
        Rules in configured order.
    """
    if entries is None:
        entries = get_config("routing.default_rules", []) or []
    rules = [rule_from_settings(entry) for entry in entries]
    logger.debug(f"Loaded {len(rules)} default routing rule(s)")
    return rules
