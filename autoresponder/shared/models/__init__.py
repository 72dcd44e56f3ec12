"""Shared data models for the auto-respond pipeline."""

from .rule import GuildConfig, MatchMode, Rule

__all__ = [
    "GuildConfig",
    "MatchMode",
    "Rule",
]
