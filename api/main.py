"""
FastAPI main application for the Book Review API.
"""

import time
from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.auth import (
    TokenManager, get_current_user, get_token_manager, hash_password, verify_password
)
from api.config import config as api_config
from api.database import APIDatabaseService, get_db_service
from api.models import (
    AuthResponse, BookCreate, BookDetailResponse, BookListResponse, BookResponse,
    BookReviewsResponse, BookUpdate, ErrorResponse, HealthResponse, LoginRequest,
    MessageResponse, MyBooksResponse, RegisterRequest, ReviewCreate, ReviewListResponse,
    ReviewResponse, ReviewUpdate, UserResponse
)
from catalog.database import MongoDBManager
from catalog.errors import AuthenticationError, CatalogError, ServerError, ValidationError
from utilities.config import config
from utilities.logger import setup_logging

logger = structlog.get_logger(__name__)

MIN_PASSWORD_LENGTH = 6


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )
    logger.info("Starting Book Review API")

    db_manager = MongoDBManager(
        connection_url=config.mongodb_url,
        database_name=config.mongodb_database,
        users_collection=config.users_collection,
        books_collection=config.books_collection,
        reviews_collection=config.reviews_collection
    )
    try:
        database = await db_manager.connect()
        app.state.db_service = APIDatabaseService(
            database,
            users_collection=config.users_collection,
            books_collection=config.books_collection,
            reviews_collection=config.reviews_collection
        )
        logger.info("Database connection established")
    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        raise

    yield

    logger.info("Shutting down Book Review API")
    app.state.db_service = None
    await db_manager.disconnect()


app = FastAPI(
    title=api_config.api_title,
    description="""
    REST API for cataloguing books and reviewing them.

    ## Features

    * **Books**: Browse the paginated catalog, add books, edit and delete your own
    * **Reviews**: One review per book per reader, with average ratings
    * **Authentication**: Register or log in to receive a bearer token

    ## Authentication

    Write operations require a token in the Authorization header:

    ```
    Authorization: Bearer your_token_here
    ```
    """,
    version=api_config.api_version,
    license_info={
        "name": "MIT",
        "url": "https://opensource.org/licenses/MIT",
    },
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=api_config.cors_origins,
    allow_credentials=api_config.cors_allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every request with its status and duration."""
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(
            "Request failed",
            method=request.method,
            path=request.url.path,
            error=str(e),
            duration_ms=round((time.perf_counter() - started) * 1000, 2)
        )
        raise
    logger.info(
        "Request handled",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 2)
    )
    return response


# Exception handlers
@app.exception_handler(CatalogError)
async def catalog_exception_handler(request: Request, exc: CatalogError):
    """Render domain errors as {message}."""
    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(message=exc.message).model_dump(exclude_none=True),
        headers=headers
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions such as unknown routes."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(message=str(exc.detail)).model_dump(exclude_none=True),
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies and query parameters are a 400, not a 422."""
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = f"Invalid request: {location}: {first.get('msg')}"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(message=message).model_dump(exclude_none=True)
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error("Unhandled exception", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            message=ServerError.default_message,
            detail=str(exc) if api_config.debug else None
        ).model_dump(exclude_none=True)
    )


# Health check endpoint
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(request: Request):
    """Health check endpoint."""
    db_status = "unknown"
    db_service = getattr(request.app.state, "db_service", None)
    if db_service:
        health_info = await db_service.health_check()
        db_status = health_info.get("status", "unknown")
    return HealthResponse(status="ok", database_status=db_status)


# Auth endpoints
@app.post("/api/auth/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED, tags=["Auth"])
async def register(
    body: RegisterRequest,
    db_service: APIDatabaseService = Depends(get_db_service),
    tokens: TokenManager = Depends(get_token_manager)
):
    """Register a user and return a token."""
    try:
        if not body.name or not body.name.strip() or not body.email or not body.email.strip() or not body.password:
            raise ValidationError("Name, email and password are required")
        if len(body.password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        user = await db_service.create_user(body.name.strip(), body.email, hash_password(body.password))
        return AuthResponse(token=tokens.create_token(user.id), user=user)

    except CatalogError:
        raise
    except Exception as e:
        logger.error("Failed to register user", error=str(e))
        raise ServerError()


@app.post("/api/auth/login", response_model=AuthResponse, tags=["Auth"])
async def login(
    body: LoginRequest,
    db_service: APIDatabaseService = Depends(get_db_service),
    tokens: TokenManager = Depends(get_token_manager)
):
    """Exchange email and password for a token."""
    try:
        if not body.email or not body.password:
            raise ValidationError("Email and password are required")

        user_doc = await db_service.get_user_by_email(body.email)
        if not user_doc or not verify_password(user_doc["password"], body.password):
            raise AuthenticationError("Invalid email or password")

        user = UserResponse.from_document(user_doc)
        logger.info("User logged in", user_id=user.id)
        return AuthResponse(token=tokens.create_token(user.id), user=user)

    except CatalogError:
        raise
    except Exception as e:
        logger.error("Failed to log in", error=str(e))
        raise ServerError()


@app.get("/api/auth/me", response_model=UserResponse, tags=["Auth"])
async def me(current_user: UserResponse = Depends(get_current_user)):
    """Return the authenticated user."""
    return current_user


# Books endpoints
@app.get("/api/books", response_model=BookListResponse, tags=["Books"])
async def get_books(
    page: int = 1,
    limit: int = api_config.default_page_size,
    db_service: APIDatabaseService = Depends(get_db_service)
):
    """
    Get the catalog, newest books first.

    - **page**: Page number (starts from 1)
    - **limit**: Books per page
    """
    try:
        return await db_service.get_books(page, limit)
    except CatalogError:
        raise
    except Exception as e:
        logger.error("Failed to get books", error=str(e))
        raise ServerError()


@app.post("/api/books", response_model=BookResponse, status_code=status.HTTP_201_CREATED, tags=["Books"])
async def add_book(
    body: BookCreate,
    current_user: UserResponse = Depends(get_current_user),
    db_service: APIDatabaseService = Depends(get_db_service)
):
    """Add a book. Title and author are required."""
    try:
        return await db_service.create_book(current_user, body)
    except CatalogError:
        raise
    except Exception as e:
        logger.error("Failed to add book", error=str(e), user_id=current_user.id)
        raise ServerError()


@app.get("/api/books/mybooks", response_model=MyBooksResponse, tags=["Books"])
async def get_my_books(
    current_user: UserResponse = Depends(get_current_user),
    db_service: APIDatabaseService = Depends(get_db_service)
):
    """Get the books added by the authenticated user."""
    try:
        return await db_service.get_books_by_owner(current_user)
    except CatalogError:
        raise
    except Exception as e:
        logger.error("Failed to get user books", error=str(e), user_id=current_user.id)
        raise ServerError()


@app.get("/api/books/{book_id}", response_model=BookDetailResponse, tags=["Books"])
async def get_book(book_id: str, db_service: APIDatabaseService = Depends(get_db_service)):
    """Get a single book with its average rating and review count."""
    try:
        return await db_service.get_book(book_id)
    except CatalogError:
        raise
    except Exception as e:
        logger.error("Failed to get book", book_id=book_id, error=str(e))
        raise ServerError()


@app.get("/api/books/{book_id}/reviews", response_model=BookReviewsResponse, tags=["Books"])
async def get_book_with_reviews(book_id: str, db_service: APIDatabaseService = Depends(get_db_service)):
    """Get a book together with its reviews and average rating."""
    try:
        return await db_service.get_book_with_reviews(book_id)
    except CatalogError:
        raise
    except Exception as e:
        logger.error("Failed to get book details and reviews", book_id=book_id, error=str(e))
        raise ServerError()


@app.put("/api/books/{book_id}", response_model=BookResponse, tags=["Books"])
async def update_book(
    book_id: str,
    body: BookUpdate,
    current_user: UserResponse = Depends(get_current_user),
    db_service: APIDatabaseService = Depends(get_db_service)
):
    """Update a book you added."""
    try:
        return await db_service.update_book(book_id, current_user, body)
    except CatalogError:
        raise
    except Exception as e:
        logger.error("Failed to update book", book_id=book_id, error=str(e))
        raise ServerError()


@app.delete("/api/books/{book_id}", response_model=MessageResponse, tags=["Books"])
async def delete_book(
    book_id: str,
    current_user: UserResponse = Depends(get_current_user),
    db_service: APIDatabaseService = Depends(get_db_service)
):
    """Delete a book you added, along with all of its reviews."""
    try:
        await db_service.delete_book(book_id, current_user)
        return MessageResponse(message="Book removed")
    except CatalogError:
        raise
    except Exception as e:
        logger.error("Failed to delete book", book_id=book_id, error=str(e))
        raise ServerError()


# Reviews endpoints
@app.post("/api/reviews", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED, tags=["Reviews"])
async def add_review(
    body: ReviewCreate,
    current_user: UserResponse = Depends(get_current_user),
    db_service: APIDatabaseService = Depends(get_db_service)
):
    """Review a book. Each user may review a book once."""
    try:
        return await db_service.create_review(current_user, body)
    except CatalogError:
        raise
    except Exception as e:
        logger.error("Failed to add review", error=str(e), user_id=current_user.id)
        raise ServerError()


@app.put("/api/reviews/{review_id}", response_model=ReviewResponse, tags=["Reviews"])
async def update_review(
    review_id: str,
    body: ReviewUpdate,
    current_user: UserResponse = Depends(get_current_user),
    db_service: APIDatabaseService = Depends(get_db_service)
):
    """Update a review you wrote."""
    try:
        return await db_service.update_review(review_id, current_user, body)
    except CatalogError:
        raise
    except Exception as e:
        logger.error("Failed to update review", review_id=review_id, error=str(e))
        raise ServerError()


@app.delete("/api/reviews/{review_id}", response_model=MessageResponse, tags=["Reviews"])
async def delete_review(
    review_id: str,
    current_user: UserResponse = Depends(get_current_user),
    db_service: APIDatabaseService = Depends(get_db_service)
):
    """Delete a review you wrote."""
    try:
        await db_service.delete_review(review_id, current_user)
        return MessageResponse(message="Review deleted")
    except CatalogError:
        raise
    except Exception as e:
        logger.error("Failed to delete review", review_id=review_id, error=str(e))
        raise ServerError()


@app.get("/api/reviews/book/{book_id}", response_model=ReviewListResponse, tags=["Reviews"])
async def get_reviews_by_book(book_id: str, db_service: APIDatabaseService = Depends(get_db_service)):
    """Get the reviews of a book, newest first, with the average rating."""
    try:
        return await db_service.get_reviews_for_book(book_id)
    except CatalogError:
        raise
    except Exception as e:
        logger.error("Failed to get reviews", book_id=book_id, error=str(e))
        raise ServerError()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=api_config.host,
        port=api_config.port,
        reload=api_config.debug,
        log_level=api_config.log_level.lower()
    )
