from __future__ import annotations

import threading
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Tuple

from pydantic import BaseModel, ConfigDict, Field, HttpUrl

FeatureVector = Tuple[float, ...]

_stamp_lock = threading.Lock()
_last_stamp = 0


def next_stamp() -> int:
    """Strictly increasing wall-clock nanoseconds for this process."""
    global _last_stamp
    with _stamp_lock:
        stamp = max(time.time_ns(), _last_stamp + 1)
        _last_stamp = stamp
    return stamp


def new_id() -> tuple[str, datetime]:
    """Return an id that sorts in creation order, plus its creation time."""
    stamp = next_stamp()
    created = datetime.fromtimestamp(stamp / 1_000_000_000, tz=timezone.utc)
    return f"{stamp:019d}-{uuid.uuid4().hex[:8]}", created


class VerdictStatus(str, Enum):
    CREDIBLE = "Credible"
    QUESTIONABLE = "Questionable"
    MISLEADING = "Misleading"
    EXTREMELY_MISLEADING = "Extremely Misleading"


class Severity(str, Enum):
    TRUE = "True"
    CAUTION = "Caution"
    FALSE = "False"


class QueueKind(str, Enum):
    ANALYSIS = "analysis"
    QUIZ_SUBMISSION = "quiz"
    REPORT = "report"


class Citation(BaseModel):
    url: HttpUrl
    label: str


class Finding(BaseModel):
    section: str
    severity: Severity
    explanation: str
    citations: list[Citation] = Field(default_factory=list)


class Verdict(BaseModel):
    score: int = Field(..., ge=0, le=100)
    status: VerdictStatus
    summary: str
    findings: list[Finding] = Field(default_factory=list)


class CacheEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    vector: FeatureVector
    verdict: Verdict
    created_at: datetime


class QueueItem(BaseModel):
    id: str
    kind: QueueKind
    payload: Any = None
    enqueued_at: datetime
    attempts: int = Field(0, ge=0)
    dead_lettered: bool = False
    last_error: str | None = None


class SyncReport(BaseModel):
    attempted: int = 0
    delivered: int = 0
    failed: int = 0
    dead_lettered: int = 0
    error: str | None = None

    @property
    def clean(self) -> bool:
        return self.failed == 0 and self.error is None
