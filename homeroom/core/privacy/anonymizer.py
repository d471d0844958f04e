"""
Child identity anonymizer.

Real child names are swapped for CHILD_n tokens before any text is sent to
an AI provider and swapped back in the result before it is stored. A
mapping lives only for the duration of one extraction call.

Matching is whole-word and case-insensitive, and the separators inside a
name may be spaces, dots, underscores or hyphens, so "AMY SMITH" and
"amy.smith@..." are both caught. Tokens always restore the stored spelling.
"""
import re
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, List, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "CHILD_"
_TOKEN_PATTERN = re.compile(rf"(?<!\w){TOKEN_PREFIX}(\d+)(?!\w)")
_NAME_SEPARATORS = re.compile(r"[\s._-]+")


def _name_key(name: Optional[str]) -> str:
    """Lookup key: separators collapsed to one space, lower-cased."""
    return _NAME_SEPARATORS.sub(" ", (name or "").strip(" ._-\t\n")).lower()


def _name_regex(key: str) -> str:
    return r"[\s._-]+".join(re.escape(part) for part in key.split(" "))


@dataclass(frozen=True)
class ChildMapping:
    """One child's token and the non-identifying details the model may see."""
    token: str
    real_name: str
    display_name: Optional[str] = None
    year_group: Optional[str] = None
    school_name: Optional[str] = None


class ChildAnonymizer:
    """Bidirectional name <-> token substitution for one extraction call."""

    def __init__(self, mappings: Optional[List[ChildMapping]] = None):
        self.mappings = list(mappings or [])
        self._by_token = {m.token: m for m in self.mappings}

        self._token_for_name = {}
        for m in self.mappings:
            if _name_key(m.real_name):
                self._token_for_name.setdefault(_name_key(m.real_name), m.token)

        # Longest names first so "Anna Marie" wins over "Anna"
        keys = sorted(self._token_for_name, key=len, reverse=True)
        self._name_pattern = (
            re.compile(
                r"(?<!\w)(" + "|".join(_name_regex(k) for k in keys) + r")(?!\w)",
                re.IGNORECASE,
            )
            if keys else None
        )

    @classmethod
    def from_profiles(cls, profiles: Iterable[Any]) -> "ChildAnonymizer":
        """
        Build a fresh mapping from active child profiles.

        Tokens are assigned CHILD_1, CHILD_2, ... in profile id order.
        Inactive profiles are ignored.
        """
        active = [p for p in profiles if getattr(p, 'is_active', True) and getattr(p, 'real_name', None)]
        active.sort(key=lambda p: p.id)
        mappings = [
            ChildMapping(
                token=f"{TOKEN_PREFIX}{i}",
                real_name=p.real_name,
                display_name=getattr(p, 'display_name', None),
                year_group=getattr(p, 'year_group', None),
                school_name=getattr(p, 'school_name', None),
            )
            for i, p in enumerate(active, 1)
        ]
        logger.debug(f"Built anonymization mapping for {len(mappings)} child(ren)")
        return cls(mappings)

    @property
    def enabled(self) -> bool:
        return bool(self.mappings)

    def anonymize(self, text: Optional[str]) -> Optional[str]:
        """Replace real names with tokens (no-op without profiles)."""
        if not text or self._name_pattern is None:
            return text
        return self._name_pattern.sub(lambda m: self._token_for_name[_name_key(m.group(1))], text)

    def deanonymize(self, value: Any) -> Any:
        """
        Replace tokens with real names.

        Accepts a string, a pydantic model (every string field, nested
        models and lists included), a dict or a list. Unknown tokens are
        left as they are.
        """
        if not self.mappings:
            return value
        if isinstance(value, Enum):
            return value
        if isinstance(value, str):
            return _TOKEN_PATTERN.sub(self._name_for_token, value)
        if isinstance(value, BaseModel):
            updates = {name: self.deanonymize(getattr(value, name)) for name in type(value).model_fields}
            return value.model_copy(update=updates)
        if isinstance(value, dict):
            return {k: self.deanonymize(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self.deanonymize(v) for v in value]
        return value

    def _name_for_token(self, match) -> str:
        mapping = self._by_token.get(match.group(0))
        return mapping.real_name if mapping else match.group(0)

    def format_profiles_for_prompt(self) -> str:
        """
        Child context for the prompt: token, year group and school only.

        Returns an empty string when there are no profiles.
        """
        if not self.mappings:
            return ""
        lines = ["Children in this family (refer to them only by these tokens):"]
        for m in self.mappings:
            details = [d for d in (m.year_group, m.school_name) if d]
            line = f"- {m.token}"
            if details:
                line += f": {' at '.join(details)}"
            lines.append(line)
        return "\n".join(lines)
