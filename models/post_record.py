from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class StoredImage:
    """Object store location of an uploaded image.

    Attributes:
        url: Publicly readable URL.
        path: Object path inside the bucket (e.g. `food-photos/food_..._abc123.jpg`).
    """

    url: str
    path: str


@dataclass
class ScoringDetails:
    """Model output persisted next to `posts.health_score`."""

    reasoning: str
    confidence: int
    model: str
    analysis_time: int
    scored_at: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScoringDetails":
        return cls(
            reasoning=str(data.get("reasoning") or ""),
            confidence=int(data.get("confidence") or 0),
            model=str(data.get("model") or ""),
            analysis_time=int(data.get("analysis_time") or 0),
            scored_at=str(data.get("scored_at") or ""),
        )


@dataclass
class PostRecord:
    """In-memory representation of a row in the `posts` table.

    Attributes:
        id: Primary key (UUID string; None for new records).
        user_id: Owner of the post.
        image_url: Public URL of the stored photo.
        image_path: Object path of the stored photo.
        health_score: 1-10 score, None until the scoring function writes it.
        scoring_details: Model reasoning and metadata, None until scored.
        created_at: UTC ISO-8601 timestamp of the insert.
    """

    id: Optional[str]
    user_id: str
    image_url: str
    image_path: str
    health_score: Optional[int] = None
    scoring_details: Optional[ScoringDetails] = None
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "image_url": self.image_url,
            "image_path": self.image_path,
            "health_score": self.health_score,
            "scoring_details": self.scoring_details.to_dict() if self.scoring_details else None,
            "created_at": self.created_at,
        }
