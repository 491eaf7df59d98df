"""
Book enrichment: fetch missing fields for a canonical book from a provider
and merge them in without ever overwriting populated data.
"""
import asyncio
from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from app.internal.catalog import CatalogStore, RECORD_FIELDS, UNIQUE_FIELDS, normalize_identifiers
from app.internal.models import (
    BatchEnrichmentResult,
    Book,
    EnrichmentResult,
    ExternalRecord,
    InfoQuality,
    LibraryAddResult,
    ProviderResult,
    ReadingStatus,
)
from app.internal.providers.base import BookSearchProvider, SearchOptions
from app.internal.providers.isbn import is_asin, is_isbn_shaped, is_open_library_key, split_isbn
from app.util.log import logger

# Everything a provider may fill in; the title is never replaced
ENRICHABLE_FIELDS = [field for field in RECORD_FIELDS if field != "title"]
ISBN_FORMS = ("isbn_10", "isbn_13")

GOOGLE_BOOKS = "Google Books"
OPEN_LIBRARY = "Open Library"
AMAZON_CREATORS = "Amazon Creators"


def is_empty(value: Any) -> bool:
    return value is None or value == "" or value == []


def should_enrich(book: Book) -> bool:
    """False once a book is complete, stamped and has a page count."""
    if book.enriched_at is None:
        return True
    if book.info_quality == InfoQuality.basic:
        return True
    return book.page_count is None and book.external_id is not None


def merge_record(book: Book, record: ExternalRecord, catalog: CatalogStore) -> list[str]:
    """
    Copy fields from ``record`` into empty fields of ``book``. Returns the names
    of the fields that changed. Unique identifiers are only copied when no other
    row already owns them. ISBN-10/13 forms are only copied when the record
    describes the same edition as the book's own isbn.
    """
    incoming = normalize_identifiers({field: getattr(record, field) for field in ENRICHABLE_FIELDS})
    incoming_forms = split_isbn(incoming.get("isbn"))
    added: list[str] = []
    for field in ENRICHABLE_FIELDS:
        value = incoming.get(field)
        if is_empty(value) or not is_empty(getattr(book, field)):
            continue
        if field in ISBN_FORMS and split_isbn(book.isbn) != incoming_forms:
            logger.debug(
                "Skipping ISBN form from another edition",
                book_id=book.id,
                field=field,
                value=value,
            )
            continue
        if field in UNIQUE_FIELDS and catalog.identifier_taken(field, value, exclude_id=book.id):
            logger.warning(
                "Skipping identifier owned by another book",
                book_id=book.id,
                field=field,
                value=value,
            )
            continue
        setattr(book, field, value)
        added.append(field)
    return added


class BookEnrichmentService:
    def __init__(
        self,
        providers: Sequence[BookSearchProvider],
        batch_size: int = 10,
        batch_delay: float = 0.2,
    ):
        self.providers = list(providers)
        self.batch_size = batch_size
        self.batch_delay = batch_delay

    def _provider(self, name: str) -> Optional[BookSearchProvider]:
        for provider in self.providers:
            if provider.name == name and provider.is_enabled():
                return provider
        return None

    def provider_for(self, external_id: str) -> Optional[BookSearchProvider]:
        """Pick the provider that owns an external id by its shape."""
        if is_asin(external_id):
            return self._provider(AMAZON_CREATORS)
        if is_open_library_key(external_id):
            return self._provider(OPEN_LIBRARY)
        return self._provider(GOOGLE_BOOKS)

    async def fetch_record(self, identifier: str) -> ProviderResult:
        """
        Resolve one identifier to provider records. ISBN-shaped identifiers go
        through the search chain, anything else is looked up by id.
        """
        if is_isbn_shaped(identifier):
            return await self._search_isbn(identifier)
        provider = self.provider_for(identifier)
        if provider is None:
            return ProviderResult.failure("Enrichment", f"No enabled provider for id {identifier}")
        return await provider.get_items([identifier])

    async def _search_isbn(self, isbn: str) -> ProviderResult:
        last: Optional[ProviderResult] = None
        for provider in self.providers:
            if not provider.is_enabled():
                continue
            last = await provider.search(isbn, SearchOptions(max_results=1))
            if last.success and last.total_found > 0:
                return last
        return last or ProviderResult.failure("Enrichment", "No enabled providers")

    def _identifier(self, book: Book, external_id: Optional[str]) -> Optional[str]:
        for candidate in (external_id, book.google_id, book.amazon_asin, book.open_library_key, book.isbn):
            if candidate:
                return candidate
        return None

    async def enrich_book(
        self,
        catalog: CatalogStore,
        book: Book,
        external_id: Optional[str] = None,
    ) -> EnrichmentResult:
        if not should_enrich(book):
            return EnrichmentResult(
                success=True,
                book_id=book.id,
                message="Book already enriched",
            )

        identifier = self._identifier(book, external_id)
        if identifier is None:
            return EnrichmentResult(
                success=False,
                book_id=book.id,
                message="No identifier available for enrichment",
            )

        result = await self.fetch_record(identifier)
        if not result.success or not result.books:
            logger.info(
                "Enrichment fetch failed",
                book_id=book.id,
                identifier=identifier,
                message=result.message,
            )
            return EnrichmentResult(
                success=False,
                book_id=book.id,
                provider=result.provider,
                message=result.message or "Book not found",
            )

        record = result.books[0]
        added = merge_record(book, record, catalog)
        if not added and book.info_quality == InfoQuality.complete and book.enriched_at is not None:
            # Nothing new and nothing to upgrade: leave the row untouched
            return EnrichmentResult(
                success=True,
                book_id=book.id,
                provider=record.provider,
                message="No missing fields to fill",
            )

        book.info_quality = InfoQuality.complete
        now = datetime.now()
        if book.enriched_at is None or book.enriched_at < now:
            book.enriched_at = now
        try:
            catalog.save(book)
        except SQLAlchemyError:
            return EnrichmentResult(
                success=False,
                book_id=book.id,
                provider=record.provider,
                message="Failed to save enriched book",
            )

        logger.info(
            "Book enriched",
            book_id=book.id,
            provider=record.provider,
            added_fields=added,
        )
        return EnrichmentResult(
            success=True,
            book_id=book.id,
            provider=record.provider,
            added_fields=added,
            message="Book enriched successfully",
        )

    async def enrich_books_in_batch(
        self,
        catalog: CatalogStore,
        book_ids: Optional[Sequence[str]] = None,
    ) -> BatchEnrichmentResult:
        """
        Enrich books one after another. Without ids, the oldest never-enriched
        basic books are picked. A failing item never stops the batch.
        """
        if book_ids:
            targets: list[tuple[str, Optional[Book]]] = [(i, catalog.get(i)) for i in book_ids]
        else:
            targets = [(b.id, b) for b in catalog.pending_enrichment(self.batch_size)]

        summary = BatchEnrichmentResult()
        for index, (book_id, book) in enumerate(targets):
            if book is None:
                result = EnrichmentResult(success=False, book_id=book_id, message="Book not found")
            else:
                result = await self.enrich_book(catalog, book)
            summary.results.append(result)
            summary.processed += 1
            if result.success:
                summary.success_count += 1
            else:
                summary.error_count += 1
            if index < len(targets) - 1 and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

        logger.info(
            "Batch enrichment finished",
            processed=summary.processed,
            success_count=summary.success_count,
            error_count=summary.error_count,
        )
        return summary

    async def create_enriched_book_from_record(
        self,
        catalog: CatalogStore,
        record: ExternalRecord,
        user_id: str,
        is_private: bool = False,
        reading_status: ReadingStatus = ReadingStatus.want_to_read,
    ) -> LibraryAddResult:
        """Create the canonical row from a fetched record, then attach it to the library."""
        try:
            book, created = catalog.create_from_record(
                record,
                info_quality=InfoQuality.complete,
                enriched_at=datetime.now(),
            )
        except SQLAlchemyError:
            return LibraryAddResult(success=False, message="Failed to create book")

        enrichment = None
        if not created:
            # Someone else created it first; fill whatever they left empty
            enrichment = await self._merge_into_existing(catalog, book, record)

        try:
            _, attached = catalog.attach_to_library(user_id, book.id, is_private, reading_status)
        except SQLAlchemyError:
            return LibraryAddResult(
                success=False,
                book_id=book.id,
                created=created,
                message="Book created but could not be added to the library",
            )
        return LibraryAddResult(
            success=True,
            book_id=book.id,
            created=created,
            already_in_library=not attached,
            enrichment=enrichment,
            message="Book added to library" if attached else "Book already in library",
        )

    async def _merge_into_existing(
        self, catalog: CatalogStore, book: Book, record: ExternalRecord
    ) -> EnrichmentResult:
        added = merge_record(book, record, catalog)
        if not added:
            return EnrichmentResult(success=True, book_id=book.id, provider=record.provider)
        if book.info_quality == InfoQuality.basic:
            book.info_quality = InfoQuality.complete
        book.enriched_at = datetime.now()
        try:
            catalog.save(book)
        except SQLAlchemyError:
            return EnrichmentResult(success=False, book_id=book.id, message="Failed to save enriched book")
        return EnrichmentResult(
            success=True,
            book_id=book.id,
            provider=record.provider,
            added_fields=added,
            message="Book enriched successfully",
        )

    async def create_enriched_book_from_google(
        self,
        catalog: CatalogStore,
        external_id: str,
        user_id: str,
        is_private: bool = False,
        reading_status: ReadingStatus = ReadingStatus.want_to_read,
    ) -> LibraryAddResult:
        """
        Fetch an external record by id and create the canonical book from it.
        Nothing is attached to the library unless the book exists afterwards.
        """
        result = await self.fetch_record(external_id)
        if not result.success or not result.books:
            return LibraryAddResult(
                success=False,
                message=result.message or "Book not found",
            )
        return await self.create_enriched_book_from_record(
            catalog, result.books[0], user_id, is_private, reading_status
        )

    async def create_enriched_book_from_isbn(
        self,
        catalog: CatalogStore,
        isbn: str,
        user_id: str,
        is_private: bool = False,
        reading_status: ReadingStatus = ReadingStatus.want_to_read,
    ) -> LibraryAddResult:
        existing = catalog.find_by_isbn(isbn)
        if existing is not None:
            _, attached = catalog.attach_to_library(user_id, existing.id, is_private, reading_status)
            return LibraryAddResult(
                success=True,
                book_id=existing.id,
                already_in_library=not attached,
                message="Book added to library" if attached else "Book already in library",
            )

        result = await self._search_isbn(isbn)
        if not result.success or not result.books:
            return LibraryAddResult(success=False, message=result.message or "Book not found")
        record = result.books[0]
        if not record.isbn:
            record.isbn = isbn
        return await self.create_enriched_book_from_record(
            catalog, record, user_id, is_private, reading_status
        )
