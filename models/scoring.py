"""Result types passed between the upload flow and the scoring function."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ScoreResult:
    """Validated model output for one image."""

    score: int
    reasoning: str
    confidence: int
    model: str
    analysis_time_ms: int


@dataclass
class ScoringOutcome:
    """Client-side view of a scoring call; never raised, always returned."""

    success: bool
    score: Optional[int] = None
    reasoning: Optional[str] = None
    confidence: Optional[int] = None
    model: Optional[str] = None
    analysis_time_ms: Optional[int] = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def failure(cls, error: str, error_type: str) -> "ScoringOutcome":
        return cls(success=False, error=error, error_type=error_type)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "score": self.score,
            "reasoning": self.reasoning,
            "confidence": self.confidence,
            "model": self.model,
            "analysis_time": self.analysis_time_ms,
            "error": self.error,
            "error_type": self.error_type,
        }


@dataclass
class UploadResult:
    """Outcome of the upload flow (store binary, insert post, trigger scoring)."""

    success: bool
    image_url: Optional[str] = None
    image_path: Optional[str] = None
    post_id: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def failure(cls, error: str, error_type: str) -> "UploadResult":
        return cls(success=False, error=error, error_type=error_type)


@dataclass(frozen=True)
class DailyHealthScore:
    total_score: int = 0
    post_count: int = 0
    average_score: float = 0.0
