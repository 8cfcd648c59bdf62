"""Review endpoints for the prwatch API.

This module exposes the reviews produced by the orchestrator.
"""

import structlog
from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from api.dependencies import ReviewStoreDep
from core.review.models import StoredReview

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/reviews", tags=["Reviews"])


class ReviewListResponse(BaseModel):
    """Response model for listing reviews.

    Attributes:
        reviews: Reviews, newest first.
        total: Total number of reviews.
    """

    reviews: list[StoredReview] = Field(..., description="Reviews, newest first")
    total: int = Field(..., description="Total count")


@router.get(
    "",
    response_model=ReviewListResponse,
    summary="List reviews",
    description="List all stored reviews, newest first.",
)
async def list_reviews(store: ReviewStoreDep) -> ReviewListResponse:
    """List stored reviews."""
    reviews = await store.list_reviews()
    return ReviewListResponse(reviews=reviews, total=len(reviews))


@router.get(
    "/{review_id}",
    response_model=StoredReview,
    summary="Get review",
    description="Fetch one review by its identifier.",
)
async def get_review(review_id: str, store: ReviewStoreDep) -> StoredReview:
    """Fetch a review.

    Raises:
        HTTPException: If the review does not exist.
    """
    review = await store.get_review(review_id)
    if review is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Review '{review_id}' not found",
        )
    return review
