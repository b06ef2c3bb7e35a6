"""AIRLOG — Normalized Track Models.

Every connection type normalizes into these shapes, regardless of whether the
feed spoke JSON, XML, RSS or plain text.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class FetchResult(BaseModel):
    """Raw payload plus transport metadata from one fetch."""

    body: str
    http_status: Optional[int] = None
    content_type: Optional[str] = None
    fetched_at: datetime

    @property
    def is_success(self) -> bool:
        return self.http_status is None or 200 <= self.http_status < 300


class NormalizedRecord(BaseModel):
    """One track extracted from a payload. Every field may be absent."""

    model_config = {"frozen": True}

    artist: Optional[str] = None
    title: Optional[str] = None
    album: Optional[str] = None
    reported_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return not any(
            (self.artist, self.title, self.album, self.reported_at, self.duration_seconds)
        )


class Evaluation(BaseModel):
    """Mapping evaluator output: ordered records or a parse failure."""

    model_config = {"frozen": True}

    records: List[NormalizedRecord] = Field(default_factory=list)
    parse_error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.parse_error is None
