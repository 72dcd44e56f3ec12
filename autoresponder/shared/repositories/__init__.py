"""Rule repository layer."""

from .rule import InMemoryRuleRepository, RuleStore

__all__ = [
    "InMemoryRuleRepository",
    "RuleStore",
]
