"""
YAML-based prompt loader with variable substitution.

Usage:
    from homeroom.core.ai.prompts import get_prompt

    prompt = get_prompt("extraction.user_prompt", current_date="2024-03-04", ...)
"""
import re
import yaml
import logging
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

PROMPTS_PATH = Path(__file__).parent / "prompts.yaml"

_prompts_cache: Optional[Dict[str, Any]] = None

_VARIABLE_PATTERN = re.compile(r"\{([a-z_][a-z0-9_]*)\}")


def load_prompts(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load (and cache) the prompt file."""
    global _prompts_cache
    if path is not None:
        with open(path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}
    if _prompts_cache is None:
        with open(PROMPTS_PATH, 'r', encoding='utf-8') as f:
            _prompts_cache = yaml.safe_load(f) or {}
        logger.debug(f"Loaded prompts from {PROMPTS_PATH}")
    return _prompts_cache


def substitute(template: str, **variables) -> str:
    """
    Replace {name} placeholders that have a value; leave every other brace as is.

    Values are inserted verbatim and never re-scanned, so email text
    containing braces cannot inject placeholders.
    """
    def _replace(match):
        name = match.group(1)
        if name in variables:
            return str(variables[name])
        return match.group(0)

    return _VARIABLE_PATTERN.sub(_replace, template)


def get_prompt(key: str, **variables) -> str:
    """
    Get a prompt by dotted key, with placeholders filled.

    Raises:
        KeyError: If the key does not exist
    """
    node: Any = load_prompts()
    for part in key.split('.'):
        if not isinstance(node, dict) or part not in node:
            raise KeyError(f"Prompt not found: {key}")
        node = node[part]
    return substitute(node, **variables)
