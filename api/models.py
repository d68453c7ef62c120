"""
API models and schemas for the FastAPI application.

Request and response bodies use camelCase keys on the wire; Python code uses
the snake_case field names.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


# Requests

class RegisterRequest(CamelModel):
    """Body of POST /api/auth/register."""
    name: Optional[str] = Field(None, description="Display name")
    email: Optional[str] = Field(None, description="Login email")
    password: Optional[str] = Field(None, description="Plain text password")


class LoginRequest(CamelModel):
    """Body of POST /api/auth/login."""
    email: Optional[str] = Field(None, description="Login email")
    password: Optional[str] = Field(None, description="Plain text password")


class BookCreate(CamelModel):
    """Body of POST /api/books. Title and author are checked by the handler."""
    title: Optional[str] = Field(None, description="Book title")
    author: Optional[str] = Field(None, description="Book author")
    description: Optional[str] = Field(None, description="Book description")
    genre: Optional[str] = Field(None, description="Book genre")
    year: Optional[int] = Field(None, description="Publication year")


class BookUpdate(CamelModel):
    """Body of PUT /api/books/{id}. Empty values keep the stored value."""
    title: Optional[str] = None
    author: Optional[str] = None
    description: Optional[str] = None
    genre: Optional[str] = None
    year: Optional[int] = None

    def changes(self) -> Dict[str, Any]:
        """Stored field names and values for every non-empty field. Blank strings count as empty."""
        return {
            field: value
            for field, value in self.model_dump().items()
            if value and not (isinstance(value, str) and not value.strip())
        }


class ReviewCreate(CamelModel):
    """Body of POST /api/reviews."""
    book_id: Optional[str] = Field(None, description="Reviewed book identifier")
    rating: Optional[Any] = Field(None, description="Rating (1-5)")
    review_text: Optional[str] = Field(None, description="Review body")


class ReviewUpdate(CamelModel):
    """Body of PUT /api/reviews/{id}."""
    rating: Optional[Any] = Field(None, description="Rating (1-5)")
    review_text: Optional[str] = Field(None, description="Review body")


# Responses

class UserResponse(CamelModel):
    """Public view of a user."""
    id: str = Field(..., description="User identifier")
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Login email")

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "UserResponse":
        return cls(id=str(doc["_id"]), name=doc["name"], email=doc["email"])


class AuthResponse(CamelModel):
    """Token issued on register or login."""
    token: str = Field(..., description="Bearer token")
    user: UserResponse


class BookResponse(CamelModel):
    """Book response model for API."""
    id: str = Field(..., description="Unique book identifier")
    title: str = Field(..., description="Book title")
    author: str = Field(..., description="Book author")
    description: Optional[str] = Field(None, description="Book description")
    genre: Optional[str] = Field(None, description="Book genre")
    year: Optional[int] = Field(None, description="Publication year")
    added_by: str = Field(..., description="Identifier of the user who added the book")
    added_by_name: Optional[str] = Field(None, description="Name of the user who added the book")
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp")

    @classmethod
    def from_document(cls, doc: Dict[str, Any], added_by_name: Optional[str] = None) -> "BookResponse":
        return cls(
            id=str(doc["_id"]),
            title=doc["title"],
            author=doc["author"],
            description=doc.get("description"),
            genre=doc.get("genre"),
            year=doc.get("year"),
            added_by=str(doc["addedBy"]),
            added_by_name=added_by_name,
            created_at=doc.get("createdAt"),
            updated_at=doc.get("updatedAt"),
        )


class BookDetailResponse(BookResponse):
    """A single book with its aggregate rating."""
    average_rating: float = Field(0, description="Mean rating, 0 without reviews")
    reviews_count: int = Field(0, description="Number of reviews")


class BookListResponse(CamelModel):
    """Response model for book list with pagination."""
    books: List[BookResponse] = Field(..., description="List of books")
    page: int = Field(..., description="Current page number")
    total_pages: int = Field(..., description="Total number of pages")
    total_books: int = Field(..., description="Total number of books")


class MyBooksResponse(CamelModel):
    """Books added by the current user."""
    books: List[BookResponse]


class ReviewResponse(CamelModel):
    """Review response model for API."""
    id: str = Field(..., description="Unique review identifier")
    book_id: str = Field(..., description="Reviewed book")
    user_id: str = Field(..., description="Review author")
    user_name: Optional[str] = Field(None, description="Name of the review author")
    rating: int = Field(..., ge=1, le=5, description="Rating (1-5)")
    review_text: Optional[str] = Field(None, description="Review body")
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp")

    @classmethod
    def from_document(cls, doc: Dict[str, Any], user_name: Optional[str] = None) -> "ReviewResponse":
        return cls(
            id=str(doc["_id"]),
            book_id=str(doc["bookId"]),
            user_id=str(doc["userId"]),
            user_name=user_name,
            rating=doc["rating"],
            review_text=doc.get("reviewText"),
            created_at=doc.get("createdAt"),
            updated_at=doc.get("updatedAt"),
        )


class ReviewListResponse(CamelModel):
    """Reviews of a book with the aggregate rating."""
    reviews: List[ReviewResponse]
    average_rating: float = Field(..., description="Mean rating, 0 without reviews")
    reviews_count: int = Field(..., description="Number of reviews")


class BookReviewsResponse(ReviewListResponse):
    """A book together with its reviews."""
    book: BookResponse


class MessageResponse(CamelModel):
    """Plain confirmation message."""
    message: str


class ErrorResponse(CamelModel):
    """Error response model."""
    message: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Additional error details (debug only)")


class HealthResponse(CamelModel):
    """Health check response model."""
    status: str = Field("ok", description="Service status")
    database_status: str = Field("unknown", description="Database connection status")
