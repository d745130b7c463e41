"""
Lexicon loader and regex compiler for the offline feature extractor.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

DEFAULT_LEXICON_PATH = Path(__file__).resolve().parent / "data" / "lexicons.json"
LEXICON_GROUPS = ("suspicious", "emotional", "uncertainty", "virality", "censorship")

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str, limit: int | None = None) -> str:
    """Lowercase, replace punctuation with spaces, collapse whitespace, truncate."""
    value = _NON_WORD.sub(" ", text.lower())
    value = _WHITESPACE.sub(" ", value).strip()
    if limit is not None:
        value = value[:limit]
    return value


def load_json(path: Path) -> Any:
    """Load a JSON file with UTF-8 encoding."""
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _clean_terms(group: str, value: Any) -> List[str]:
    if not isinstance(value, list):
        logger.warning("Lexicon group %s is not a list; using an empty group", group)
        return []
    terms: List[str] = []
    for item in value:
        if isinstance(item, str) and item.strip():
            terms.append(item)
        else:
            logger.warning("Skip invalid %s lexicon entry: %r", group, item)
    return terms


def load_lexicons(path: str | os.PathLike[str] | None = None) -> Dict[str, List[str]]:
    """
    Load lexicon groups keyed by name.
    Missing groups are returned empty so callers can index every group.
    """
    lexicon_path = Path(path) if path else DEFAULT_LEXICON_PATH
    raw = load_json(lexicon_path)
    if not isinstance(raw, dict):
        raise ValueError(f"Lexicon file {lexicon_path} must contain a JSON object")

    lexicons = {group: _clean_terms(group, raw.get(group, [])) for group in LEXICON_GROUPS}
    unknown = sorted(set(raw) - set(LEXICON_GROUPS))
    if unknown:
        logger.warning("Ignoring unknown lexicon groups: %s", ", ".join(unknown))

    logger.info(
        "Loaded lexicons from %s (%s)",
        lexicon_path,
        ", ".join(f"{group}:{len(terms)}" for group, terms in lexicons.items()),
    )
    return lexicons


def compile_lexicon(terms: List[str]) -> list[re.Pattern]:
    """
    Compile word-boundary patterns for terms normalized like the input text,
    so "before it's removed" matches the normalized "before it s removed".
    """
    compiled: list[re.Pattern] = []
    seen: set[str] = set()
    for term in terms:
        normalized = normalize_text(term)
        if not normalized or normalized in seen:
            continue
        seen.add(normalized)
        compiled.append(re.compile(rf"\b{re.escape(normalized)}\b"))
    return compiled
