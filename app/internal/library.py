"""
Entry points used by the outer API: library add, admin catalog writes,
batch enrichment, search and editions.
"""
import re
from datetime import datetime
from typing import Any, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError, field_validator
from sqlalchemy.exc import SQLAlchemyError

from app.internal.book_search import BookSearchService
from app.internal.catalog import CatalogStore, UNIQUE_FIELDS, normalize_identifiers
from app.internal.enrichment import BookEnrichmentService, should_enrich
from app.internal.models import (
    BatchEnrichmentResult,
    Book,
    CatalogWriteResult,
    EnrichmentResult,
    InfoQuality,
    LibraryAddResult,
    ReadingStatus,
    SearchResponse,
)
from app.util.exceptions import handle_validation_error
from app.util.log import logger


def parse_published_date(value: Optional[str]) -> Optional[str]:
    """
    Accepts a year, a year-month or a full ISO date. Full dates are stored as
    ``YYYY-MM-DD``; partial dates are kept as given.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if re.fullmatch(r"\d{4}", value) or re.fullmatch(r"\d{4}-\d{2}", value):
        return value
    try:
        return datetime.fromisoformat(value).date().isoformat()
    except ValueError:
        raise ValueError("must be a valid date, year (YYYY), or year-month (YYYY-MM)")


class CatalogBookInput(BaseModel):
    """Admin payload for creating or replacing catalog fields."""

    title: str = Field(min_length=1, max_length=255)
    google_id: Optional[str] = None
    isbn: Optional[str] = Field(default=None, max_length=20)
    amazon_asin: Optional[str] = None
    authors: Optional[str] = None
    subtitle: Optional[str] = None
    thumbnail: Optional[str] = Field(default=None, max_length=512)
    description: Optional[str] = None
    language: Optional[str] = Field(default=None, max_length=10)
    publisher: Optional[str] = Field(default=None, max_length=255)
    published_date: Optional[str] = None
    page_count: Optional[int] = Field(default=None, ge=1)
    categories: Optional[list[str]] = None

    @field_validator("published_date")
    @classmethod
    def _published_date(cls, value: Optional[str]) -> Optional[str]:
        return parse_published_date(value)


class CatalogBookUpdate(CatalogBookInput):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)


async def add_to_library(
    catalog: CatalogStore,
    enrichment: BookEnrichmentService,
    user_id: str,
    book_id: Optional[str] = None,
    isbn: Optional[str] = None,
    google_id: Optional[str] = None,
    is_private: bool = False,
    reading_status: ReadingStatus = ReadingStatus.read,
) -> LibraryAddResult:
    """
    Resolve the identifiers to a canonical book, creating and enriching it
    when it does not exist yet, and attach it to the user's library.
    """
    book = catalog.find_existing(book_id, isbn, google_id)
    if book is not None:
        return await _attach_existing(
            catalog, enrichment, book, user_id, google_id, is_private, reading_status
        )

    if google_id:
        return await enrichment.create_enriched_book_from_google(
            catalog, google_id, user_id, is_private, reading_status
        )
    if isbn:
        return await enrichment.create_enriched_book_from_isbn(
            catalog, isbn, user_id, is_private, reading_status
        )
    return LibraryAddResult(
        success=False,
        message="Book not found. Please provide book_id, isbn, or google_id.",
    )


async def _attach_existing(
    catalog: CatalogStore,
    enrichment: BookEnrichmentService,
    book: Book,
    user_id: str,
    google_id: Optional[str],
    is_private: bool,
    reading_status: ReadingStatus,
) -> LibraryAddResult:
    if catalog.get_library_entry(user_id, book.id) is not None:
        return LibraryAddResult(
            success=True,
            book_id=book.id,
            already_in_library=True,
            message="Book is already in your library",
        )

    enrichment_result = None
    if should_enrich(book):
        enrichment_result = await enrichment.enrich_book(catalog, book, google_id)

    try:
        _, attached = catalog.attach_to_library(user_id, book.id, is_private, reading_status)
    except SQLAlchemyError:
        return LibraryAddResult(
            success=False,
            book_id=book.id,
            enrichment=enrichment_result,
            message="Could not add book to library",
        )
    return LibraryAddResult(
        success=True,
        book_id=book.id,
        already_in_library=not attached,
        enrichment=enrichment_result,
        message="Book added to your library successfully" if attached else "Book is already in your library",
    )


async def create_catalog_book(
    catalog: CatalogStore,
    enrichment: BookEnrichmentService,
    payload: dict[str, Any],
) -> CatalogWriteResult:
    """
    Admin create. An existing book with the same isbn or google id is
    returned instead, enriched when it still needs it and a google id was
    supplied.
    """
    try:
        data = CatalogBookInput.model_validate(payload)
    except ValidationError as e:
        handle_validation_error(e, "catalog book payload")
        return CatalogWriteResult(success=False, message=str(e))

    existing = catalog.find_existing(None, data.isbn, google_id=data.google_id)
    if existing is not None:
        needs_enrichment = should_enrich(existing)
        result = None
        if needs_enrichment and data.google_id:
            result = await enrichment.enrich_book(catalog, existing, data.google_id)
        return CatalogWriteResult(
            success=True,
            book_id=existing.id,
            created=False,
            enriched=needs_enrichment,
            enrichment=result,
            message="Book already exists in global catalog",
        )

    try:
        book, created = catalog.create(
            {**data.model_dump(exclude_none=True), "info_quality": InfoQuality.basic}
        )
    except SQLAlchemyError:
        return CatalogWriteResult(success=False, message="Failed to create book")

    result = None
    if data.google_id:
        result = await enrichment.enrich_book(catalog, book, data.google_id)
    return CatalogWriteResult(
        success=True,
        book_id=book.id,
        created=created,
        enriched=bool(result and result.success),
        enrichment=result,
        message="Book created in global catalog" if created else "Book already exists in global catalog",
    )


async def update_catalog_book(
    catalog: CatalogStore,
    enrichment: BookEnrichmentService,
    book_id: str,
    payload: dict[str, Any],
) -> CatalogWriteResult:
    """
    Admin update. Only the fields present in ``payload`` are written; a
    unique identifier already owned by another book is rejected.
    """
    book = catalog.get(book_id)
    if book is None:
        return CatalogWriteResult(success=False, message="Book not found")

    try:
        data = CatalogBookUpdate.model_validate(payload)
    except ValidationError as e:
        handle_validation_error(e, "catalog book payload", book_id=book_id)
        return CatalogWriteResult(success=False, book_id=book_id, message=str(e))

    changes = normalize_identifiers(data.model_dump(exclude_unset=True))
    if changes.get("title") is None:
        changes.pop("title", None)
    for field in UNIQUE_FIELDS:
        value = changes.get(field)
        if value and catalog.identifier_taken(field, value, exclude_id=book.id):
            return CatalogWriteResult(
                success=False,
                book_id=book.id,
                message=f"The {field} has already been taken.",
            )

    try:
        book = catalog.update(book, changes)
    except SQLAlchemyError:
        return CatalogWriteResult(success=False, book_id=book.id, message="Failed to update book")

    result = None
    google_id = changes.get("google_id")
    if google_id and should_enrich(book):
        result = await enrichment.enrich_book(catalog, book, google_id)
    logger.info("Catalog book updated", book_id=book.id, fields=sorted(changes))
    return CatalogWriteResult(
        success=True,
        book_id=book.id,
        enriched=bool(result and result.success),
        enrichment=result,
        message="Book updated",
    )


async def enrich_catalog_book(
    catalog: CatalogStore,
    enrichment: BookEnrichmentService,
    book_id: str,
    external_id: Optional[str] = None,
) -> EnrichmentResult:
    book = catalog.get(book_id)
    if book is None:
        return EnrichmentResult(success=False, book_id=book_id, message="Book not found")
    return await enrichment.enrich_book(catalog, book, external_id)


async def enrich_catalog_books(
    catalog: CatalogStore,
    enrichment: BookEnrichmentService,
    book_ids: Optional[Sequence[str]] = None,
) -> BatchEnrichmentResult:
    return await enrichment.enrich_books_in_batch(catalog, book_ids)


async def search_books(
    search: BookSearchService,
    catalog: CatalogStore,
    term: str,
    max_results: int = 20,
    includes: Optional[Sequence[str]] = None,
    locale: Optional[str] = None,
) -> SearchResponse:
    return await search.search(
        term,
        max_results=max_results,
        includes=includes,
        locale=locale,
        catalog=catalog,
    )


async def book_editions(
    search: BookSearchService,
    catalog: CatalogStore,
    book_id: str,
) -> SearchResponse:
    book = catalog.get(book_id)
    if book is None:
        return SearchResponse(success=False, message="Book not found", original_query=book_id)
    return await search.find_editions(book, catalog)