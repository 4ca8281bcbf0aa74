"""Read-side helpers over a user's scored and unscored posts."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from dal.post_dal import PostDAL, utc_timestamp
from models.post_record import PostRecord
from models.scoring import DailyHealthScore, ScoringOutcome
from services.scoring.response_parser import round_half_up
from services.scoring.trigger import ScoringTrigger

LOGGER = logging.getLogger(__name__)


class HealthScoreHistory:
    """Find posts awaiting a score and summarise today's scores for a user."""

    def __init__(self, post_dal: PostDAL, trigger: ScoringTrigger) -> None:
        self.post_dal = post_dal
        self.trigger = trigger

    async def get_latest_unscored_post(self, user_id: str) -> Optional[PostRecord]:
        """Return the user's newest post without a health score, or None."""
        try:
            return await self.post_dal.latest_unscored_post(user_id)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.error("[GET-LATEST-POST] Error fetching latest post: %s", exc)
            return None

    async def score_latest_post(self, user_id: str) -> ScoringOutcome:
        """Score the newest unscored post of `user_id` and wait for the result."""
        latest = await self.get_latest_unscored_post(user_id)
        if latest is None:
            return ScoringOutcome.failure("No unscored posts found", "LookupError")
        return await self.trigger.score_food(latest.image_url, latest.id)

    async def get_today_health_score(self, user_id: str, now: Optional[datetime] = None) -> DailyHealthScore:
        """Sum and average the user's scores for the current local day.

        Args:
            user_id: Owner of the posts.
            now: Reference time; defaults to the current local time. Naive
                values are interpreted as local time.
        """
        local_now = (now or datetime.now()).astimezone()
        start_of_day = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
        end_of_day = start_of_day + timedelta(days=1)

        try:
            posts = await self.post_dal.scored_posts_between(
                user_id, utc_timestamp(start_of_day), utc_timestamp(end_of_day)
            )
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.error("[TODAY-SCORE] Error: %s", exc)
            return DailyHealthScore()

        if not posts:
            return DailyHealthScore()

        total = sum(post.health_score or 0 for post in posts)
        count = len(posts)
        average = round_half_up(total / count * 10) / 10
        LOGGER.info("[TODAY-SCORE] Total: %d, Count: %d, Average: %.1f", total, count, average)
        return DailyHealthScore(total_score=total, post_count=count, average_score=average)
