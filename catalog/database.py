"""
MongoDB connection management for the catalog.
Handles connection, ping and index creation for users, books and reviews.
"""

from typing import Optional

import structlog
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure

logger = structlog.get_logger(__name__)


class MongoDBManager:
    """
    Async MongoDB manager owning the process-wide client.
    One instance is created at startup and closed at shutdown.
    """

    def __init__(
        self,
        connection_url: str,
        database_name: str,
        users_collection: str = "users",
        books_collection: str = "books",
        reviews_collection: str = "reviews"
    ):
        """
        Initialize MongoDB manager.

        Args:
            connection_url: MongoDB connection URL
            database_name: Name of the database
            users_collection: Name of the users collection
            books_collection: Name of the books collection
            reviews_collection: Name of the reviews collection
        """
        self.connection_url = connection_url
        self.database_name = database_name
        self.users_collection_name = users_collection
        self.books_collection_name = books_collection
        self.reviews_collection_name = reviews_collection
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None

    async def connect(self) -> AsyncIOMotorDatabase:
        """Establish connection to MongoDB and make sure indexes exist."""
        try:
            self.client = AsyncIOMotorClient(self.connection_url)
            self.database = self.client[self.database_name]

            await self.client.admin.command('ping')
            logger.info("Successfully connected to MongoDB", database=self.database_name)

            await self._create_indexes()
            return self.database

        except ConnectionFailure as e:
            logger.error("Failed to connect to MongoDB", error=str(e))
            raise

    async def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self.client:
            self.client.close()
            self.client = None
            self.database = None
            logger.info("Disconnected from MongoDB")

    async def _create_indexes(self) -> None:
        """
        Create indexes for the listing queries and the uniqueness rules.

        The compound (bookId, userId) index is unique so that two concurrent
        reviews by the same user for the same book cannot both be stored.
        """
        try:
            users = self.database[self.users_collection_name]
            books = self.database[self.books_collection_name]
            reviews = self.database[self.reviews_collection_name]

            await users.create_index("email", unique=True)

            # Catalog listing is newest first
            await books.create_index([("createdAt", DESCENDING)])
            await books.create_index([("addedBy", ASCENDING), ("createdAt", DESCENDING)])

            await reviews.create_index([("bookId", ASCENDING), ("createdAt", DESCENDING)])
            await reviews.create_index(
                [("bookId", ASCENDING), ("userId", ASCENDING)],
                unique=True,
                name="one_review_per_user_per_book"
            )

            logger.info("Successfully created MongoDB indexes")

        except Exception as e:
            logger.error("Failed to create indexes", error=str(e))
            raise
