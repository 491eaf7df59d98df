import random
import string
from datetime import date, datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field as PydanticField
from sqlalchemy import UniqueConstraint
from sqlmodel import JSON, Column, DateTime, Field, SQLModel, func


class BaseSQLModel(SQLModel):
    pass


class InfoQuality(str, Enum):
    basic = "basic"
    complete = "complete"


class AsinStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class ReadingStatus(str, Enum):
    want_to_read = "want_to_read"
    reading = "reading"
    read = "read"
    abandoned = "abandoned"
    on_hold = "on_hold"
    re_reading = "re_reading"


class Region(str, Enum):
    US = "US"
    BR = "BR"
    UK = "UK"
    CA = "CA"


def generate_book_id() -> str:
    """Catalog ids look like B-7QK2-M9XA."""
    alphabet = string.ascii_uppercase + string.digits
    first = "".join(random.choices(alphabet, k=4))
    second = "".join(random.choices(alphabet, k=4))
    return f"B-{first}-{second}"


class Book(BaseSQLModel, table=True):
    """The canonical catalog entry. One row per work/edition, deduplicated across external ids."""

    id: str = Field(default_factory=generate_book_id, primary_key=True)
    title: str
    authors: Optional[str] = None
    subtitle: Optional[str] = None

    isbn: Optional[str] = Field(default=None, unique=True, index=True)
    isbn_10: Optional[str] = None
    isbn_13: Optional[str] = None
    google_id: Optional[str] = Field(default=None, unique=True, index=True)
    amazon_asin: Optional[str] = Field(default=None, unique=True, index=True)
    open_library_key: Optional[str] = None

    thumbnail: Optional[str] = None
    description: Optional[str] = None
    publisher: Optional[str] = None
    published_date: Optional[str] = None
    page_count: Optional[int] = None
    language: Optional[str] = None
    categories: Optional[list[str]] = Field(default=None, sa_column=Column(JSON))
    maturity_rating: Optional[str] = None
    amazon_rating: Optional[float] = None
    amazon_rating_count: Optional[int] = None

    info_quality: InfoQuality = Field(
        default=InfoQuality.basic,
        sa_column_kwargs={"server_default": "basic"},
    )
    enriched_at: Optional[datetime] = None
    asin_status: AsinStatus = Field(
        default=AsinStatus.pending,
        sa_column_kwargs={"server_default": "pending"},
    )
    asin_processed_at: Optional[datetime] = None

    created_at: datetime = Field(
        default_factory=datetime.now,
        sa_column=Column(
            server_default=func.now(),
            type_=DateTime,
            nullable=False,
        ),
    )
    updated_at: datetime = Field(
        default_factory=datetime.now,
        sa_column=Column(
            onupdate=func.now(),
            server_default=func.now(),
            type_=DateTime,
            nullable=False,
        ),
    )

    @property
    def external_id(self) -> Optional[str]:
        return self.google_id or self.amazon_asin or self.open_library_key


class UserBook(BaseSQLModel, table=True):
    """A book attached to a user's library."""

    __table_args__ = (UniqueConstraint("user_id", "book_id", name="uq_userbook_user_book"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    book_id: str = Field(foreign_key="book.id", ondelete="CASCADE", index=True)
    is_private: bool = False
    reading_status: ReadingStatus = Field(
        default=ReadingStatus.want_to_read,
        sa_column_kwargs={"server_default": "want_to_read"},
    )
    added_at: datetime = Field(
        default_factory=datetime.now,
        sa_column=Column(
            server_default=func.now(),
            type_=DateTime,
            nullable=False,
        ),
    )
    read_at: Optional[date] = None


class PurchaseLink(BaseModel):
    region: Region
    label: str
    domain: str
    url: str


class ExternalRecord(BaseModel):
    """A single provider hit, normalized. Never persisted directly."""

    provider: str
    title: str

    google_id: Optional[str] = None
    amazon_asin: Optional[str] = None
    open_library_key: Optional[str] = None

    subtitle: Optional[str] = None
    authors: Optional[str] = None
    isbn: Optional[str] = None
    isbn_10: Optional[str] = None
    isbn_13: Optional[str] = None
    thumbnail: Optional[str] = None
    description: Optional[str] = None
    publisher: Optional[str] = None
    published_date: Optional[str] = None
    page_count: Optional[int] = None
    language: Optional[str] = None
    categories: Optional[list[str]] = None
    maturity_rating: Optional[str] = None
    preview_link: Optional[str] = None
    info_link: Optional[str] = None
    amazon_rating: Optional[float] = None
    amazon_rating_count: Optional[int] = None

    catalog_id: Optional[str] = None
    purchase_links: Optional[list[PurchaseLink]] = None


class ProviderResult(BaseModel):
    success: bool
    provider: str
    books: list[ExternalRecord] = PydanticField(default_factory=list)
    total_found: int = 0
    message: str = ""

    @classmethod
    def from_books(
        cls,
        provider: str,
        books: list[ExternalRecord],
        empty_message: str = "No books found",
    ) -> "ProviderResult":
        """A request that succeeded but found nothing still counts as a failure."""
        if not books:
            return cls(success=False, provider=provider, message=empty_message)
        return cls(
            success=True,
            provider=provider,
            books=books,
            total_found=len(books),
            message=f"Found {len(books)} books",
        )

    @classmethod
    def failure(cls, provider: str, message: str) -> "ProviderResult":
        return cls(success=False, provider=provider, message=message)


class ProviderAttempt(BaseModel):
    provider: str
    success: bool
    total_found: int
    message: str


class SearchResponse(BaseModel):
    success: bool
    provider: Optional[str] = None
    source: Literal["local", "external"] = "external"
    books: list[ExternalRecord] = PydanticField(default_factory=list)
    total_found: int = 0
    message: str = ""
    suggestions: list[str] = PydanticField(default_factory=list)
    providers_tried: list[ProviderAttempt] = PydanticField(default_factory=list)
    original_query: str = ""
    cached_at: Optional[datetime] = None
    marketplace_search_url: Optional[str] = None


class EnrichmentResult(BaseModel):
    success: bool
    added_fields: list[str] = PydanticField(default_factory=list)
    message: str = ""
    book_id: Optional[str] = None
    provider: Optional[str] = None


class BatchEnrichmentResult(BaseModel):
    processed: int = 0
    success_count: int = 0
    error_count: int = 0
    results: list[EnrichmentResult] = PydanticField(default_factory=list)


class LibraryAddResult(BaseModel):
    success: bool
    message: str = ""
    book_id: Optional[str] = None
    created: bool = False
    already_in_library: bool = False
    enrichment: Optional[EnrichmentResult] = None


class CatalogWriteResult(BaseModel):
    success: bool
    message: str = ""
    book_id: Optional[str] = None
    created: bool = False
    enriched: bool = False
    enrichment: Optional[EnrichmentResult] = None
