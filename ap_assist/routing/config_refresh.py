"""
Routing Config Refresh Module.

Periodically re-fetches the vendor processor configurations from the
document store and swaps them into the rule book. A refresh either
replaces the whole rule list or leaves it exactly as it was; it never
raises into the timer loop.

Author: AP Automation Team
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

from config import get_config
from ap_assist.utils.logger import get_logger
from ap_assist.utils.exceptions import ConfigSourceError
from ap_assist.utils.helpers import slugify
from .rules import Destination, RoutingRule, RuleBook

# Initialize module logger
logger = get_logger(__name__)


def rule_from_record(record: Any, default_prompt: str) -> RoutingRule:
    """
    Convert one configuration record into a routing rule.

    Args:
        record: Config record with ``displayName``/``id``, ``emailFrom``,
            ``emailSubjectContains``, ``claudePrompt``, ``pdfFolderId``
            and ``jsonFolderId``.
        default_prompt: Prompt key used when the record carries none.

    Returns:
        RoutingRule instance.

    Raises:
        ConfigSourceError: If the record is not usable.
    """
    if not isinstance(record, dict):
        raise ConfigSourceError("configs", f"record is not an object: {record!r}")

    record_id = record.get("id")
    name = slugify(record.get("displayName") or "") or (
        str(record_id) if record_id not in (None, "") else ""
    )
    sender = record.get("emailFrom")
    subject = record.get("emailSubjectContains")

    if not name:
        raise ConfigSourceError("configs", "record has neither displayName nor id")
    if not isinstance(sender, str) or not sender:
        raise ConfigSourceError("configs", f"record {name} has no emailFrom")
    if not isinstance(subject, str) or not subject:
        raise ConfigSourceError("configs", f"record {name} has no emailSubjectContains")

    pdf_folder = record.get("pdfFolderId")
    json_folder = record.get("jsonFolderId")

    return RoutingRule(
        name=name,
        sender_match=sender,
        subject_match=subject,
        enabled=bool(record.get("enabled", True)),
        prompt_template=record.get("claudePrompt") or default_prompt,
        destination=Destination(
            primary_folder_id=str(pdf_folder) if pdf_folder else None,
            secondary_folder_id=str(json_folder) if json_folder else None
        ),
        config_id=str(record_id) if record_id not in (None, "") else None
    )


def rules_from_response(response: Any, default_prompt: str) -> List[RoutingRule]:
    """
    Convert a ``configs`` response into rules, in response order.

    Raises:
        ConfigSourceError: If the response is unsuccessful or malformed.
    """
    if not isinstance(response, dict):
        raise ConfigSourceError("configs", "response is not an object")
    if not response.get("success"):
        raise ConfigSourceError("configs", response.get("error") or "unsuccessful response")

    configs = response.get("configs")
    if not isinstance(configs, list):
        raise ConfigSourceError("configs", "response has no configs list")

    return [rule_from_record(record, default_prompt) for record in configs]


class ConfigRefresher:
    """
    Keeps a RuleBook in sync with the external configuration source.

    Attributes:
        source: Object with an async ``fetch_configs()`` method.
        rulebook: Rule book updated on successful refresh.
        interval: Seconds between refreshes.

    Example:
        >>> refresher = ConfigRefresher(restlet_client, rulebook)
        >>> await refresher.refresh_once()
        >>> task = asyncio.create_task(refresher.run_forever(refresh_first=False))
    """

    def __init__(
        self,
        source: Any,
        rulebook: RuleBook,
        interval: Optional[float] = None,
        default_prompt: Optional[str] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ) -> None:
        self.source = source
        self.rulebook = rulebook
        if interval is None:
            interval = get_config("routing.refresh_interval_ms", 600000) / 1000.0
        self.interval = interval
        self.default_prompt = default_prompt or get_config("extraction.default_prompt", "credit_memo")
        self.sleep = sleep
        self.refresh_count = 0

    async def refresh_once(self) -> bool:
        """
        Fetch configurations and swap them in when at least one is enabled.

        Returns:
            True if the rule book was replaced.
        """
        logger.info("Fetching processor configs from document store...")
        try:
            response = await self.source.fetch_configs()
            rules = rules_from_response(response, self.default_prompt)
        except ConfigSourceError as e:
            logger.warning(f"Ignoring config response: {e}; keeping {len(self.rulebook)} existing rule(s)")
            return False
        except Exception as e:
            logger.error(f"Failed to fetch configs: {e}; keeping {len(self.rulebook)} existing rule(s)")
            return False

        enabled = [rule for rule in rules if rule.enabled]
        if not enabled:
            logger.warning("No enabled processor configs returned; keeping existing rules")
            return False

        self.rulebook.replace(enabled)
        self.refresh_count += 1

        logger.info(f"Loaded {len(enabled)} processor config(s):")
        for rule in enabled:
            logger.info(f"  - {rule.describe()}")
        return True

    async def run_forever(self, refresh_first: bool = True) -> None:
        """
        Refresh now (optionally) and then every ``interval`` seconds.

        Runs until cancelled.
        """
        if refresh_first:
            await self.refresh_once()
        while True:
            await self.sleep(self.interval)
            await self.refresh_once()
