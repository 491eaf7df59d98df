"""
Pytest configuration and fixtures for the bookmerge test suite.
"""
from typing import AsyncGenerator, Callable, Generator, Optional

import pytest
from aiohttp import ClientSession
from aioresponses import aioresponses
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app.internal.catalog import CatalogStore
from app.internal.env_settings import (
    AmazonSettings,
    GoogleBooksSettings,
    OpenLibrarySettings,
)
from app.internal.models import Book, ExternalRecord, InfoQuality, ProviderResult
from app.internal.providers.base import BookSearchProvider, SearchOptions
from app.util.cache import TTLCache


# Database fixtures
@pytest.fixture(scope="function")
def db_engine():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Provide a database session for tests."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def catalog(db_session) -> CatalogStore:
    return CatalogStore(db_session)


# Async HTTP mocking fixtures
@pytest.fixture(scope="function")
async def mock_client_session() -> AsyncGenerator[ClientSession, None]:
    """Provide a real ClientSession with aioresponses mocking for HTTP calls."""
    with aioresponses() as mocked:
        async with ClientSession() as session:
            # Attach mocked responses to session for easy access in tests
            session._mocked = mocked
            yield session


def sent_requests(mocked: aioresponses, method: str = "GET") -> list[dict]:
    """Keyword arguments of every recorded request for ``method``, in call order per URL."""
    return [
        call.kwargs
        for (request_method, _), calls in mocked.requests.items()
        if request_method == method
        for call in calls
    ]


@pytest.fixture
def recorded():
    return sent_requests


# Cache and settings fixtures
@pytest.fixture
def cache() -> TTLCache:
    return TTLCache()


@pytest.fixture
def google_settings() -> GoogleBooksSettings:
    return GoogleBooksSettings()


@pytest.fixture
def open_library_settings() -> OpenLibrarySettings:
    return OpenLibrarySettings()


@pytest.fixture
def amazon_settings() -> AmazonSettings:
    return AmazonSettings(
        creators_enabled=True,
        credential_id="test-id",
        credential_secret="test-secret",
        associate_tag="bookmerge-20",
        page_delay=0,
    )


# Fake providers for orchestrator tests
class FakeProvider(BookSearchProvider):
    """In-memory provider that counts calls and returns canned records."""

    def __init__(
        self,
        name: str,
        priority: int,
        books: Optional[list[ExternalRecord]] = None,
        enabled: bool = True,
        error: Optional[Exception] = None,
    ):
        super().__init__(None)  # type: ignore[arg-type]
        self.name = name
        self.priority = priority
        self.books = books or []
        self.enabled = enabled
        self.error = error
        self.search_calls: list[str] = []
        self.search_options: list[SearchOptions] = []
        self.item_calls: list[list[str]] = []
        self.variation_calls: list[str] = []

    def is_enabled(self) -> bool:
        return self.enabled

    async def _search(self, query: str, options: SearchOptions) -> ProviderResult:
        self.search_calls.append(query)
        self.search_options.append(options)
        if self.error:
            raise self.error
        return self.result([b.model_copy() for b in self.books])

    async def _get_items(self, ids: list[str]) -> ProviderResult:
        self.item_calls.append(ids)
        if self.error:
            raise self.error
        return self.result([b.model_copy() for b in self.books])

    async def _get_variations(self, external_id: str) -> ProviderResult:
        self.variation_calls.append(external_id)
        if self.error:
            raise self.error
        return self.result([b.model_copy() for b in self.books])


@pytest.fixture
def make_provider() -> Callable[..., FakeProvider]:
    return FakeProvider


@pytest.fixture
def make_record() -> Callable[..., ExternalRecord]:
    def _make(provider: str = "Google Books", title: str = "The Way of Kings", **fields) -> ExternalRecord:
        return ExternalRecord(provider=provider, title=title, **fields)

    return _make


@pytest.fixture
def make_book(db_session) -> Callable[..., Book]:
    def _make(title: str = "The Way of Kings", **fields) -> Book:
        fields.setdefault("info_quality", InfoQuality.basic)
        book = Book(title=title, **fields)
        db_session.add(book)
        db_session.commit()
        db_session.refresh(book)
        return book

    return _make


@pytest.fixture
def mock_google_books_response():
    """Mock Google Books API response."""
    return {
        "items": [
            {
                "id": "zyTCAlFPjgYC",
                "volumeInfo": {
                    "title": "The Way of Kings",
                    "subtitle": "The Stormlight Archive, Book 1",
                    "authors": ["Brandon Sanderson"],
                    "publisher": "Tor Books",
                    "description": "A fantasy epic about knights and magic.",
                    "categories": ["Fiction"],
                    "imageLinks": {
                        "thumbnail": "http://books.google.com/books/content?id=zyTCAlFPjgYC&printsec=frontcover&img=1&zoom=1&edge=curl",
                    },
                    "publishedDate": "2010-08-31",
                    "pageCount": 1007,
                    "language": "en",
                    "maturityRating": "NOT_MATURE",
                    "industryIdentifiers": [
                        {"type": "ISBN_13", "identifier": "9780765326355"},
                        {"type": "ISBN_10", "identifier": "0765326353"},
                    ],
                },
            }
        ],
        "totalItems": 1,
    }


@pytest.fixture
def mock_google_books_empty_response():
    """Mock Google Books API empty response."""
    return {"totalItems": 0}
