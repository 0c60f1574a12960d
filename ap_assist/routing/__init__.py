"""
Routing Module for the AP Assist Pipeline.

This module decides which vendor configuration handles an inbound email:
    - Ordered, immutable routing rules with first-match semantics
    - Periodic refresh of the rules from the document store
"""

from .rules import Destination, RoutingRule, RuleBook, match_rule, rules_from_settings
from .config_refresh import ConfigRefresher, rule_from_record, rules_from_response

__all__ = [
    'Destination',
    'RoutingRule',
    'RuleBook',
    'match_rule',
    'rules_from_settings',
    'ConfigRefresher',
    'rule_from_record',
    'rules_from_response'
]
