"""Keyword automation rules evaluated when no flow is active."""

import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Optional

import yaml

from kijumbe.logging_config import get_logger
from kijumbe.schemas.profile import UserProfile
from kijumbe.services.parsing import normalize
from kijumbe.services.state_machine import Flow

logger = get_logger("automation_rules")

RULES_PATH = Path(__file__).resolve().parent.parent / "rules.yaml"


class RuleConfigError(ValueError):
    pass


@dataclass(frozen=True)
class AutomationRule:
    name: str
    triggers: tuple[str, ...] = ()
    exact: tuple[str, ...] = ()
    preconditions: dict = field(default_factory=dict)
    actions: tuple[str, ...] = ()
    next_flow: Optional[Flow] = None
    _patterns: tuple[re.Pattern, ...] = field(default=(), repr=False, compare=False)

    def matches_text(self, normalized_text: str) -> bool:
        if normalized_text in self.exact:
            return True
        return any(pattern.search(normalized_text) for pattern in self._patterns)

    def preconditions_hold(self, profile: Optional[UserProfile]) -> bool:
        role = self.preconditions.get("role")
        if role is not None and (profile is None or profile.role.value != role):
            return False
        return True

    def matches(self, normalized_text: str, profile: Optional[UserProfile]) -> bool:
        return self.matches_text(normalized_text) and self.preconditions_hold(profile)


def _phrase_pattern(phrase: str) -> re.Pattern:
    return re.compile(rf"(?<!\w){re.escape(phrase)}(?!\w)")


def build_rule(data: dict) -> AutomationRule:
    name = data.get("name")
    if not name:
        raise RuleConfigError("rule without a name")
    triggers = tuple(normalize(str(item)) for item in data.get("triggers") or [])
    exact = tuple(normalize(str(item)) for item in data.get("exact") or [])
    if not triggers and not exact:
        raise RuleConfigError(f"rule {name} has no triggers")
    next_flow = data.get("next_flow")
    try:
        flow = Flow(next_flow) if next_flow else None
    except ValueError as exc:
        raise RuleConfigError(f"rule {name} has unknown next_flow {next_flow!r}") from exc
    return AutomationRule(
        name=name,
        triggers=triggers,
        exact=exact,
        preconditions=dict(data.get("preconditions") or {}),
        actions=tuple(data.get("actions") or []),
        next_flow=flow,
        _patterns=tuple(_phrase_pattern(trigger) for trigger in triggers),
    )


@lru_cache(maxsize=8)
def _load_yaml(path: Path) -> dict:
    if not path.exists():
        raise RuleConfigError(f"rules file not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    return data if isinstance(data, dict) else {}


def load_rules(path: Path = RULES_PATH, known_actions: Optional[Iterable[str]] = None) -> tuple[AutomationRule, ...]:
    """Load the rule table in priority order, rejecting unknown action names."""
    raw_rules = _load_yaml(path).get("rules") or []
    rules = tuple(build_rule(item) for item in raw_rules if isinstance(item, dict))
    if known_actions is not None:
        validate_rules(rules, known_actions)
    logger.info("Automation rules loaded", extra={"context": {"rules": len(rules), "path": str(path)}})
    return rules


def validate_rules(rules: Iterable[AutomationRule], known_actions: Iterable[str]) -> None:
    known = set(known_actions)
    for rule in rules:
        unknown = [action for action in rule.actions if action not in known]
        if unknown:
            raise RuleConfigError(f"rule {rule.name} uses unknown actions: {', '.join(unknown)}")


def match_rule(
    rules: Iterable[AutomationRule], normalized_text: str, profile: Optional[UserProfile]
) -> Optional[AutomationRule]:
    for rule in rules:
        if rule.matches(normalized_text, profile):
            return rule
    return None
