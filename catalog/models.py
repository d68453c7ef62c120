"""
Pydantic models for the documents stored in MongoDB.
Field names are snake_case in Python and camelCase in the stored documents.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bson import ObjectId
from pydantic import BaseModel, Field, validator

from catalog.rules import MAX_RATING, MIN_RATING


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class UserDocument(BaseModel):
    """A registered user. The identity is assigned by MongoDB on insert."""
    name: str = Field(..., min_length=1, description="Display name")
    email: str = Field(..., min_length=3, description="Login email, stored lowercase")
    password_hash: str = Field(..., description="Werkzeug password hash")
    created_at: datetime = Field(default_factory=utcnow)

    @validator('email')
    def normalize_email(cls, v):
        """Emails are compared case-insensitively."""
        return v.strip().lower()

    def to_mongo(self) -> Dict[str, Any]:
        """Convert to the stored document layout."""
        return {
            "name": self.name,
            "email": self.email,
            "password": self.password_hash,
            "createdAt": self.created_at,
        }


class BookDocument(BaseModel):
    """A catalogued book. added_by is set once at creation."""
    title: str = Field(..., description="Book title")
    author: str = Field(..., description="Book author")
    description: Optional[str] = Field(None, description="Book description")
    genre: Optional[str] = Field(None, description="Book genre")
    year: Optional[int] = Field(None, description="Publication year")
    added_by: ObjectId = Field(..., description="User who added the book")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @validator('title', 'author')
    def validate_required_text(cls, v):
        """Title and author cannot be blank."""
        if not v or not v.strip():
            raise ValueError('Title and author are required')
        return v

    class Config:
        """Pydantic configuration."""
        arbitrary_types_allowed = True

    def to_mongo(self) -> Dict[str, Any]:
        """Convert to the stored document layout."""
        return {
            "title": self.title,
            "author": self.author,
            "description": self.description,
            "genre": self.genre,
            "year": self.year,
            "addedBy": self.added_by,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


class ReviewDocument(BaseModel):
    """One user's review of one book."""
    book_id: ObjectId = Field(..., description="Reviewed book")
    user_id: ObjectId = Field(..., description="Review author")
    rating: int = Field(..., ge=MIN_RATING, le=MAX_RATING, description="Rating (1-5)")
    review_text: str = Field(..., description="Review body")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Config:
        """Pydantic configuration."""
        arbitrary_types_allowed = True

    def to_mongo(self) -> Dict[str, Any]:
        """Convert to the stored document layout."""
        return {
            "bookId": self.book_id,
            "userId": self.user_id,
            "rating": self.rating,
            "reviewText": self.review_text,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
