"""In-memory review store."""

import uuid

import structlog

from .capabilities import ReviewStore
from .models import ReviewDraft, StoredReview

logger = structlog.get_logger(__name__)


class InMemoryReviewStore(ReviewStore):
    """Keeps reviews in a dict keyed by a generated UUID.

    Process-local; contents are lost on restart.
    """

    def __init__(self) -> None:
        self._reviews: dict[str, StoredReview] = {}
        self._logger = logger.bind(component="review_store")

    async def create_review(self, draft: ReviewDraft) -> StoredReview:
        review = StoredReview(id=str(uuid.uuid4()), **draft.model_dump())
        self._reviews[review.id] = review

        self._logger.debug(
            "review_created",
            review_id=review.id,
            source_id=review.source_id,
            comments=len(review.comments),
        )
        return review

    async def get_review(self, review_id: str) -> StoredReview | None:
        return self._reviews.get(review_id)

    async def list_reviews(self) -> list[StoredReview]:
        return sorted(self._reviews.values(), key=lambda r: r.created_at, reverse=True)

    def __len__(self) -> int:
        return len(self._reviews)
