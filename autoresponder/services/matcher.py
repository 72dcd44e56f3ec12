"""Trigger matching against incoming message content."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from functools import lru_cache

from autoresponder.shared.models.rule import MatchMode, Rule

logger = logging.getLogger(__name__)


@lru_cache(maxsize=512)
def _compile(pattern: str, case_sensitive: bool) -> re.Pattern[str] | None:
    try:
        return re.compile(pattern, 0 if case_sensitive else re.IGNORECASE)
    except re.error as e:
        logger.debug(f"Ignoring invalid trigger pattern {pattern[:80]!r}: {e}")
        return None


def rule_matches(rule: Rule, content: str) -> bool:
    """Single-rule predicate; never raises for a bad pattern."""
    if not content:
        return False

    mode = MatchMode.parse(rule.match)
    trigger = rule.trigger or ""

    if mode is MatchMode.REGEX:
        compiled = _compile(trigger, rule.case_sensitive)
        return bool(compiled and compiled.search(content))

    # Blank triggers would match everything
    if not trigger:
        return False

    haystack = content if rule.case_sensitive else content.lower()
    needle = trigger if rule.case_sensitive else trigger.lower()

    if mode is MatchMode.EQUALS:
        return haystack == needle
    if mode is MatchMode.STARTS_WITH:
        return haystack.startswith(needle)
    return needle in haystack


def match_rules(rules: Iterable[Rule], content: str, channel_id: int | None = None) -> list[Rule]:
    """Every rule that fires for ``content`` in ``channel_id``, in rule order."""
    matched: list[Rule] = []
    for rule in rules:
        if rule.channel_id and rule.channel_id != channel_id:
            continue
        if rule_matches(rule, content):
            matched.append(rule)
    return matched
