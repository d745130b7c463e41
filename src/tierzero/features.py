from __future__ import annotations

import logging
import re
from itertools import islice
from typing import Any, Dict, List, Optional

from .data_loader import LEXICON_GROUPS, compile_lexicon, load_lexicons, normalize_text
from .errors import ExtractionError
from .models import FeatureVector

logger = logging.getLogger(__name__)

FEATURE_NAMES = (
    "suspicious_density",
    "emotional_density",
    "uncertainty_density",
    "exclamation_runs",
    "caps_runs",
    "question_runs",
    "share_pressure",
    "censorship_claim",
    "long_text",
    "date_patterns",
    "percentage_claims",
)
FEATURE_DIM = len(FEATURE_NAMES)
FEATURE_INDEX = {name: index for index, name in enumerate(FEATURE_NAMES)}
ZERO_VECTOR: FeatureVector = (0.0,) * FEATURE_DIM


def _clip(value: float) -> float:
    return float(min(max(value, 0.0), 1.0))


class FeatureExtractor:
    """Turn raw text into a fixed-length vector of misinformation signals in [0, 1]."""

    EXCLAMATION_PATTERN = re.compile(r"!{2,}")
    ALL_CAPS_PATTERN = re.compile(r"[A-Z]{3,}")
    QUESTION_PATTERN = re.compile(r"\?{3,}")
    DATE_PATTERN = re.compile(r"\d{1,2}/\d{1,2}/\d{2,4}")
    PERCENT_PATTERN = re.compile(r"\d+%")
    WORD_PATTERN = re.compile(r"\S+")

    def __init__(
        self,
        lexicons: Optional[Dict[str, List[str]]] = None,
        *,
        max_length: int = 512,
        long_text_words: int = 200,
    ) -> None:
        lexicons = lexicons if lexicons is not None else load_lexicons()
        self._patterns = {group: compile_lexicon(lexicons.get(group, [])) for group in LEXICON_GROUPS}
        self._max_length = max_length
        self._long_text_words = long_text_words

    @property
    def dimension(self) -> int:
        return FEATURE_DIM

    def extract(self, text: Any) -> FeatureVector:
        try:
            raw = self._coerce(text)
        except ExtractionError as exc:
            logger.warning("Feature extraction guarded, using zero vector: %s", exc)
            return ZERO_VECTOR

        normalized = normalize_text(raw, self._max_length)
        head = raw[: self._max_length]
        length = len(normalized)

        features = [0.0] * FEATURE_DIM
        features[0] = self._density(self._hits("suspicious", normalized), length)
        features[1] = self._density(self._hits("emotional", normalized), length)
        features[2] = self._density(self._hits("uncertainty", normalized), length)

        # Punctuation and case only survive in the raw text.
        features[3] = len(self.EXCLAMATION_PATTERN.findall(head))
        features[4] = len(self.ALL_CAPS_PATTERN.findall(head))
        features[5] = len(self.QUESTION_PATTERN.findall(head))

        features[6] = 1.0 if self._hits("virality", normalized) else 0.0
        features[7] = 1.0 if self._hits("censorship", normalized) else 0.0
        features[8] = 1.0 if self._is_long(raw) else 0.0

        features[9] = len(self.DATE_PATTERN.findall(head))
        features[10] = len(self.PERCENT_PATTERN.findall(head))

        return tuple(_clip(value) for value in features)

    def explain(self, vector: FeatureVector) -> Dict[str, float]:
        return dict(zip(FEATURE_NAMES, vector))

    @staticmethod
    def _coerce(text: Any) -> str:
        if text is None:
            return ""
        if isinstance(text, str):
            return text
        if isinstance(text, (bytes, bytearray)):
            return bytes(text).decode("utf-8", errors="replace")
        raise ExtractionError(f"unsupported input type {type(text).__name__}")

    def _hits(self, group: str, normalized: str) -> int:
        return sum(1 for pattern in self._patterns[group] if pattern.search(normalized))

    @staticmethod
    def _density(hits: int, length: int) -> float:
        if length == 0:
            return 0.0
        return hits / length * 1000

    def _is_long(self, raw: str) -> bool:
        # Stop scanning once the threshold is passed.
        words = self.WORD_PATTERN.finditer(raw)
        return next(islice(words, self._long_text_words, None), None) is not None
