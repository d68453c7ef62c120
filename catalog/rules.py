"""
Authorization and consistency rules for books and reviews.

These functions are pure: they never touch the database, so the API layer
can apply them before any query runs.
"""

import math
from typing import Any, Iterable, Optional

from bson import ObjectId
from pydantic import BaseModel, Field

from catalog.errors import AuthorizationError, ValidationError

MIN_RATING = 1
MAX_RATING = 5

PAGINATION_MESSAGE = "Page and limit must be positive integers"
RATING_MESSAGE = f"Rating must be between {MIN_RATING} and {MAX_RATING}"


class PageWindow(BaseModel):
    """Slice of an ordered collection selected by page and limit."""
    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1)
    skip: int = Field(..., ge=0)


class RatingSummary(BaseModel):
    """Aggregate rating of a book, recomputed on every read."""
    average: float = 0
    count: int = 0


def is_owner(actor_id: Any, owner_id: Any) -> bool:
    """
    Check whether the actor is the owner of a resource.

    Identifiers may be ObjectIds or their hex strings; both sides are compared
    in string form.
    """
    if actor_id is None or owner_id is None:
        return False
    return str(actor_id) == str(owner_id)


def ensure_owner(actor_id: Any, owner_id: Any, message: str = "Not authorized") -> None:
    """Raise AuthorizationError unless the actor owns the resource."""
    if not is_owner(actor_id, owner_id):
        raise AuthorizationError(message)


def is_valid_object_id(value: Any) -> bool:
    """Check that a value is a 24 character hex ObjectId string."""
    return isinstance(value, str) and ObjectId.is_valid(value)


def parse_object_id(value: Any, message: str) -> ObjectId:
    """
    Convert a path or body identifier to an ObjectId.

    Args:
        value: Raw identifier from the request
        message: Error message used when the identifier is malformed

    Returns:
        The parsed ObjectId

    Raises:
        ValidationError: If the identifier is not a valid ObjectId
    """
    if not is_valid_object_id(value):
        raise ValidationError(message)
    return ObjectId(value)


def paginate(page: int, limit: int) -> PageWindow:
    """
    Build the page window for a listing.

    Raises:
        ValidationError: If page or limit is not a positive integer
    """
    if isinstance(page, bool) or isinstance(limit, bool):
        raise ValidationError(PAGINATION_MESSAGE)
    if page < 1 or limit < 1:
        raise ValidationError(PAGINATION_MESSAGE)
    return PageWindow(page=page, limit=limit, skip=(page - 1) * limit)


def total_pages(total: int, limit: int) -> int:
    """Number of pages needed to show total records, limit per page."""
    return math.ceil(total / limit)


def summarize_ratings(ratings: Iterable[int]) -> RatingSummary:
    """Mean and count of the given ratings; the mean of no ratings is 0."""
    values = list(ratings)
    if not values:
        return RatingSummary(average=0, count=0)
    return RatingSummary(average=sum(values) / len(values), count=len(values))


def validate_rating(value: Any) -> int:
    """
    Check that a rating is a whole number from 1 to 5.

    Returns:
        The rating as an int

    Raises:
        ValidationError: If the rating is missing, fractional or out of range
    """
    if value is None or isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(RATING_MESSAGE)
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(RATING_MESSAGE)
    if not MIN_RATING <= value <= MAX_RATING:
        raise ValidationError(RATING_MESSAGE)
    return int(value)


def require_text(value: Optional[str], message: str) -> str:
    """Raise ValidationError when the text is missing or blank."""
    if not value or not value.strip():
        raise ValidationError(message)
    return value


def require_book_fields(title: Optional[str], author: Optional[str]) -> None:
    """A book needs a non-empty title and author."""
    if not title or not title.strip() or not author or not author.strip():
        raise ValidationError("Title and author are required")
