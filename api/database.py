"""
Database service layer for the FastAPI application.

Every operation validates its input and applies the ownership rules before
the first query, so rejected requests never reach MongoDB.
"""

from typing import Any, Dict, Iterable, List, Optional

import structlog
from bson import ObjectId
from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from api.models import (
    BookCreate, BookDetailResponse, BookListResponse, BookResponse, BookReviewsResponse,
    BookUpdate, MyBooksResponse, ReviewCreate, ReviewListResponse, ReviewResponse,
    ReviewUpdate, UserResponse
)
from catalog import rules
from catalog.errors import NotFoundError, ServerError, ValidationError
from catalog.models import BookDocument, ReviewDocument, UserDocument, utcnow

logger = structlog.get_logger(__name__)

INVALID_BOOK_ID = "Invalid book ID"
INVALID_REVIEW_ID = "Invalid review ID"
BOOK_NOT_FOUND = "Book not found"
REVIEW_NOT_FOUND = "Review not found"
DUPLICATE_REVIEW = "You have already reviewed this book"


class APIDatabaseService:
    """Database service for API operations."""

    def __init__(
        self,
        database: AsyncIOMotorDatabase,
        users_collection: str = "users",
        books_collection: str = "books",
        reviews_collection: str = "reviews"
    ):
        self.database = database
        self.users_collection = database.get_collection(users_collection)
        self.books_collection = database.get_collection(books_collection)
        self.reviews_collection = database.get_collection(reviews_collection)

    # Users

    async def create_user(self, name: str, email: str, password_hash: str) -> UserResponse:
        """
        Store a new user.

        Raises:
            ValidationError: If the email is already registered
        """
        user = UserDocument(name=name, email=email, password_hash=password_hash)
        if await self.users_collection.find_one({"email": user.email}):
            raise ValidationError("User already exists")

        doc = user.to_mongo()
        try:
            result = await self.users_collection.insert_one(doc)
        except DuplicateKeyError:
            raise ValidationError("User already exists")

        doc["_id"] = result.inserted_id
        logger.info("User registered", user_id=str(result.inserted_id))
        return UserResponse.from_document(doc)

    async def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """Get the stored user document, password hash included, by email."""
        return await self.users_collection.find_one({"email": email.strip().lower()})

    async def get_user_by_id(self, user_id: str) -> Optional[UserResponse]:
        """Get a user by identifier, without the password hash."""
        if not rules.is_valid_object_id(user_id):
            return None
        doc = await self.users_collection.find_one({"_id": ObjectId(user_id)}, {"password": 0})
        if doc is None:
            return None
        return UserResponse.from_document(doc)

    async def _user_names(self, user_ids: Iterable[Any]) -> Dict[str, str]:
        """Map user identifiers to display names with a single query."""
        ids = list({ObjectId(str(user_id)) for user_id in user_ids if user_id is not None})
        if not ids:
            return {}
        cursor = self.users_collection.find({"_id": {"$in": ids}}, {"name": 1})
        users = await cursor.to_list(length=None)
        return {str(user["_id"]): user.get("name") for user in users}

    # Books

    async def _find_book(self, book_id: str) -> Dict[str, Any]:
        """Validate the identifier and load the book, or raise."""
        object_id = rules.parse_object_id(book_id, INVALID_BOOK_ID)
        book = await self.books_collection.find_one({"_id": object_id})
        if book is None:
            raise NotFoundError(BOOK_NOT_FOUND)
        return book

    async def _book_reviews(self, book_id: ObjectId) -> List[Dict[str, Any]]:
        """All reviews of a book, newest first."""
        cursor = self.reviews_collection.find({"bookId": book_id}).sort("createdAt", DESCENDING)
        return await cursor.to_list(length=None)

    async def _books_with_owners(self, docs: List[Dict[str, Any]]) -> List[BookResponse]:
        names = await self._user_names(doc.get("addedBy") for doc in docs)
        return [
            BookResponse.from_document(doc, added_by_name=names.get(str(doc.get("addedBy"))))
            for doc in docs
        ]

    async def _reviews_with_authors(self, docs: List[Dict[str, Any]]) -> List[ReviewResponse]:
        names = await self._user_names(doc.get("userId") for doc in docs)
        return [
            ReviewResponse.from_document(doc, user_name=names.get(str(doc.get("userId"))))
            for doc in docs
        ]

    async def get_books(self, page: int, limit: int) -> BookListResponse:
        """
        Get one page of the catalog, newest books first.

        Args:
            page: Page number, starting at 1
            limit: Books per page

        Returns:
            BookListResponse with the page and totals

        Raises:
            ValidationError: If page or limit is not positive
        """
        window = rules.paginate(page, limit)
        try:
            total = await self.books_collection.count_documents({})
            cursor = (
                self.books_collection.find({})
                .sort("createdAt", DESCENDING)
                .skip(window.skip)
                .limit(window.limit)
            )
            docs = await cursor.to_list(length=window.limit)

            return BookListResponse(
                books=await self._books_with_owners(docs),
                page=window.page,
                total_pages=rules.total_pages(total, window.limit),
                total_books=total
            )

        except Exception as e:
            logger.error("Failed to get books", error=str(e), page=page, limit=limit)
            raise

    async def get_books_by_owner(self, actor: UserResponse) -> MyBooksResponse:
        """Get every book the actor added, newest first."""
        cursor = self.books_collection.find({"addedBy": ObjectId(actor.id)}).sort("createdAt", DESCENDING)
        docs = await cursor.to_list(length=None)
        books = [BookResponse.from_document(doc, added_by_name=actor.name) for doc in docs]
        return MyBooksResponse(books=books)

    async def create_book(self, actor: UserResponse, data: BookCreate) -> BookResponse:
        """
        Add a book owned by the actor.

        Raises:
            ValidationError: If title or author is missing
        """
        rules.require_book_fields(data.title, data.author)
        book = BookDocument(
            title=data.title,
            author=data.author,
            description=data.description,
            genre=data.genre,
            year=data.year,
            added_by=ObjectId(actor.id)
        )
        doc = book.to_mongo()
        result = await self.books_collection.insert_one(doc)
        doc["_id"] = result.inserted_id

        logger.info("Book added", book_id=str(result.inserted_id), user_id=actor.id)
        return BookResponse.from_document(doc, added_by_name=actor.name)

    async def get_book(self, book_id: str) -> BookDetailResponse:
        """
        Get a single book with its average rating and review count.

        Raises:
            ValidationError: If the identifier is malformed
            NotFoundError: If the book does not exist
        """
        book = await self._find_book(book_id)
        cursor = self.reviews_collection.find({"bookId": book["_id"]}, {"rating": 1})
        ratings = [review["rating"] for review in await cursor.to_list(length=None)]
        summary = rules.summarize_ratings(ratings)

        names = await self._user_names([book.get("addedBy")])
        base = BookResponse.from_document(book, added_by_name=names.get(str(book.get("addedBy"))))
        return BookDetailResponse(
            **base.model_dump(),
            average_rating=summary.average,
            reviews_count=summary.count
        )

    async def get_book_with_reviews(self, book_id: str) -> BookReviewsResponse:
        """
        Get a book, its reviews and the aggregate rating.

        Raises:
            ValidationError: If the identifier is malformed
            NotFoundError: If the book does not exist
        """
        book = await self._find_book(book_id)
        reviews = await self._book_reviews(book["_id"])
        summary = rules.summarize_ratings(review["rating"] for review in reviews)

        books = await self._books_with_owners([book])
        return BookReviewsResponse(
            book=books[0],
            reviews=await self._reviews_with_authors(reviews),
            average_rating=summary.average,
            reviews_count=summary.count
        )

    async def update_book(self, book_id: str, actor: UserResponse, data: BookUpdate) -> BookResponse:
        """
        Update the non-empty fields of a book owned by the actor.

        Raises:
            ValidationError: If the identifier is malformed
            NotFoundError: If the book does not exist
            AuthorizationError: If the actor did not add the book
        """
        book = await self._find_book(book_id)
        rules.ensure_owner(actor.id, book["addedBy"])

        changes = data.changes()
        changes["updatedAt"] = utcnow()
        updated = await self.books_collection.find_one_and_update(
            {"_id": book["_id"]},
            {"$set": changes},
            return_document=ReturnDocument.AFTER
        )
        if updated is None:
            raise NotFoundError(BOOK_NOT_FOUND)

        logger.info("Book updated", book_id=book_id, fields=sorted(changes))
        return BookResponse.from_document(updated, added_by_name=actor.name)

    async def delete_book(self, book_id: str, actor: UserResponse) -> None:
        """
        Delete a book owned by the actor together with all of its reviews.

        Reviews go first, so a review never outlives its book. The two steps
        are not atomic.

        Raises:
            ValidationError: If the identifier is malformed
            NotFoundError: If the book does not exist
            AuthorizationError: If the actor did not add the book
        """
        book = await self._find_book(book_id)
        rules.ensure_owner(actor.id, book["addedBy"])

        reviews_result = await self.reviews_collection.delete_many({"bookId": book["_id"]})
        await self.books_collection.delete_one({"_id": book["_id"]})

        logger.info(
            "Book removed",
            book_id=book_id,
            reviews_deleted=reviews_result.deleted_count
        )

    # Reviews

    async def _find_review(self, object_id: ObjectId) -> Dict[str, Any]:
        review = await self.reviews_collection.find_one({"_id": object_id})
        if review is None:
            raise NotFoundError(REVIEW_NOT_FOUND)
        return review

    async def create_review(self, actor: UserResponse, data: ReviewCreate) -> ReviewResponse:
        """
        Add the actor's review of a book.

        Raises:
            ValidationError: If the input is invalid or the actor already reviewed the book
            NotFoundError: If the book does not exist
        """
        book_id = rules.parse_object_id(data.book_id, INVALID_BOOK_ID)
        rating = rules.validate_rating(data.rating)
        review_text = rules.require_text(data.review_text, "Review text is required")

        book = await self.books_collection.find_one({"_id": book_id})
        if book is None:
            raise NotFoundError(BOOK_NOT_FOUND)

        user_id = ObjectId(actor.id)
        existing = await self.reviews_collection.find_one({"bookId": book_id, "userId": user_id})
        if existing:
            raise ValidationError(DUPLICATE_REVIEW)

        doc = ReviewDocument(
            book_id=book_id,
            user_id=user_id,
            rating=rating,
            review_text=review_text
        ).to_mongo()
        try:
            result = await self.reviews_collection.insert_one(doc)
        except DuplicateKeyError:
            # Lost a race with a concurrent request from the same user
            logger.warning("Duplicate review rejected by index", book_id=str(book_id), user_id=actor.id)
            raise ValidationError(DUPLICATE_REVIEW)

        doc["_id"] = result.inserted_id
        logger.info("Review added", review_id=str(result.inserted_id), book_id=str(book_id))
        return ReviewResponse.from_document(doc, user_name=actor.name)

    async def update_review(self, review_id: str, actor: UserResponse, data: ReviewUpdate) -> ReviewResponse:
        """
        Replace the rating and text of a review written by the actor.

        Raises:
            ValidationError: If the identifier, rating or text is invalid
            NotFoundError: If the review does not exist
            AuthorizationError: If the actor did not write the review
        """
        object_id = rules.parse_object_id(review_id, INVALID_REVIEW_ID)
        rating = rules.validate_rating(data.rating)
        review_text = rules.require_text(data.review_text, "Review text is required")

        review = await self._find_review(object_id)
        rules.ensure_owner(actor.id, review["userId"], "Not authorized to update this review")

        updated = await self.reviews_collection.find_one_and_update(
            {"_id": object_id},
            {"$set": {"rating": rating, "reviewText": review_text, "updatedAt": utcnow()}},
            return_document=ReturnDocument.AFTER
        )
        if updated is None:
            raise NotFoundError(REVIEW_NOT_FOUND)

        logger.info("Review updated", review_id=review_id)
        return ReviewResponse.from_document(updated, user_name=actor.name)

    async def delete_review(self, review_id: str, actor: UserResponse) -> None:
        """
        Delete a review written by the actor.

        Raises:
            ValidationError: If the identifier is malformed
            NotFoundError: If the review does not exist
            AuthorizationError: If the actor did not write the review
        """
        object_id = rules.parse_object_id(review_id, INVALID_REVIEW_ID)
        review = await self._find_review(object_id)
        rules.ensure_owner(actor.id, review["userId"], "Not authorized to delete this review")

        await self.reviews_collection.delete_one({"_id": review["_id"]})
        logger.info("Review deleted", review_id=review_id)

    async def get_reviews_for_book(self, book_id: str) -> ReviewListResponse:
        """
        Get the reviews of a book, newest first, with the aggregate rating.

        Raises:
            ValidationError: If the identifier is malformed
            NotFoundError: If the book does not exist
        """
        book = await self._find_book(book_id)
        reviews = await self._book_reviews(book["_id"])
        summary = rules.summarize_ratings(review["rating"] for review in reviews)

        return ReviewListResponse(
            reviews=await self._reviews_with_authors(reviews),
            average_rating=summary.average,
            reviews_count=summary.count
        )

    async def health_check(self) -> Dict:
        """
        Perform database health check.

        Returns:
            Dictionary with health status
        """
        try:
            await self.database.command("ping")
            return {"status": "healthy"}
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {"status": "unhealthy", "error": str(e)}


def get_db_service(request: Request) -> APIDatabaseService:
    """
    Dependency returning the service created at startup.

    Raises:
        ServerError: If the application started without a database
    """
    db_service = getattr(request.app.state, "db_service", None)
    if db_service is None:
        logger.error("Database service not available")
        raise ServerError()
    return db_service
