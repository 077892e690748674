"""Precomputed replies for (subject, normalized message) pairs."""

from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from kijumbe.logging_config import get_logger
from kijumbe.services import templates
from kijumbe.services.parsing import normalize

logger = get_logger("response_cache")

DEFAULT_PHRASES: dict[str, str] = {
    "hello": templates.MSG_WELCOME,
    "hi": templates.MSG_WELCOME,
    "habari": templates.MSG_WELCOME,
    "1": templates.MSG_LEADER_SELECTED,
    "2": templates.MSG_MEMBER_SELECTED,
}


class ResponseCache:
    """Read-only after construction."""

    def __init__(self, entries: Optional[Mapping[tuple[str, str], str]] = None):
        self._entries = MappingProxyType(dict(entries or {}))

    @classmethod
    def for_subjects(cls, subjects: Iterable[str], phrases: Mapping[str, str] = DEFAULT_PHRASES) -> "ResponseCache":
        entries = {
            (subject, normalize(phrase)): reply for subject in subjects if subject for phrase, reply in phrases.items()
        }
        cache = cls(entries)
        if entries:
            logger.info("Response cache populated", extra={"context": {"entries": len(entries)}})
        return cache

    def __len__(self) -> int:
        return len(self._entries)

    def lookup(self, subject_id: str, normalized_text: str) -> Optional[str]:
        return self._entries.get((subject_id, normalized_text))
