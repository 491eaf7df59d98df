"""
Library add and admin catalog entry points.
"""
import asyncio
from datetime import datetime

import pytest
from sqlmodel import select

from app.internal.book_search import BookSearchService
from app.internal.enrichment import BookEnrichmentService
from app.internal.library import (
    add_to_library,
    book_editions,
    create_catalog_book,
    enrich_catalog_book,
    enrich_catalog_books,
    parse_published_date,
    search_books,
    update_catalog_book,
)
from app.internal.models import Book, InfoQuality, ReadingStatus, UserBook


@pytest.fixture
def google(make_provider, make_record):
    return make_provider(
        "Google Books",
        1,
        [
            make_record(
                title="The Way of Kings",
                google_id="zyTCAlFPjgYC",
                isbn="9780765326355",
                page_count=1007,
                authors="Brandon Sanderson",
            )
        ],
    )


@pytest.fixture
def enrichment(google):
    return BookEnrichmentService([google], batch_delay=0)


class TestPublishedDate:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("2010", "2010"),
            ("2010-08", "2010-08"),
            ("2010-08-31", "2010-08-31"),
            ("2010-08-31T10:00:00", "2010-08-31"),
            ("", None),
            (None, None),
        ],
    )
    def test_accepted_forms(self, value, expected):
        assert parse_published_date(value) == expected

    def test_rejects_free_text(self):
        with pytest.raises(ValueError):
            parse_published_date("August 2010")


@pytest.mark.asyncio
class TestAddToLibrary:
    async def test_creates_enriched_book_from_google_id(self, catalog, enrichment):
        result = await add_to_library(catalog, enrichment, "user-1", google_id="zyTCAlFPjgYC")

        assert result.success is True
        assert result.created is True
        book = catalog.get(result.book_id)
        assert book.isbn == "9780765326355"
        assert book.info_quality == InfoQuality.complete
        assert catalog.get_library_entry("user-1", book.id).reading_status == ReadingStatus.read

    async def test_creates_from_isbn(self, catalog, enrichment, google):
        result = await add_to_library(catalog, enrichment, "user-1", isbn="978-0-7653-2635-5")

        assert result.success is True
        assert len(google.search_calls) == 1
        assert catalog.get(result.book_id).page_count == 1007

    async def test_double_add_yields_one_row(self, catalog, enrichment, db_session):
        first = await add_to_library(catalog, enrichment, "user-1", google_id="zyTCAlFPjgYC")
        second = await add_to_library(catalog, enrichment, "user-1", google_id="zyTCAlFPjgYC")

        assert second.success is True
        assert second.already_in_library is True
        assert second.book_id == first.book_id
        assert len(db_session.exec(select(Book)).all()) == 1
        assert len(db_session.exec(select(UserBook)).all()) == 1

    async def test_existing_book_is_enriched_before_attach(self, catalog, enrichment, google, make_book):
        book = make_book(google_id="zyTCAlFPjgYC")

        result = await add_to_library(
            catalog, enrichment, "user-1", book_id=book.id, reading_status=ReadingStatus.reading
        )

        assert result.success is True
        assert result.created is False
        assert "page_count" in result.enrichment.added_fields
        assert google.item_calls == [["zyTCAlFPjgYC"]]
        assert catalog.get_library_entry("user-1", book.id).reading_status == ReadingStatus.reading

    async def test_enriched_book_attached_without_provider_call(self, catalog, enrichment, google, make_book):
        book = make_book(
            google_id="zyTCAlFPjgYC",
            page_count=1007,
            info_quality=InfoQuality.complete,
            enriched_at=datetime.now(),
        )

        result = await add_to_library(catalog, enrichment, "user-1", book_id=book.id)

        assert result.success is True
        assert result.enrichment is None
        assert google.item_calls == []

    async def test_concurrent_adds_share_one_row(self, catalog, enrichment, db_session):
        results = await asyncio.gather(
            add_to_library(catalog, enrichment, "user-1", isbn="9780765326355"),
            add_to_library(catalog, enrichment, "user-2", isbn="9780765326355"),
        )

        assert all(r.success for r in results)
        assert results[0].book_id == results[1].book_id
        assert len(db_session.exec(select(Book)).all()) == 1
        assert len(db_session.exec(select(UserBook)).all()) == 2

    async def test_same_book_for_another_user(self, catalog, enrichment):
        first = await add_to_library(catalog, enrichment, "user-1", google_id="zyTCAlFPjgYC")
        second = await add_to_library(catalog, enrichment, "user-2", isbn="9780765326355")

        assert second.book_id == first.book_id
        assert second.already_in_library is False

    async def test_no_identifiers(self, catalog, enrichment):
        result = await add_to_library(catalog, enrichment, "user-1")

        assert result.success is False
        assert "Book not found" in result.message

    async def test_unknown_google_id(self, catalog, make_provider, db_session):
        enrichment = BookEnrichmentService([make_provider("Google Books", 1)])

        result = await add_to_library(catalog, enrichment, "user-1", google_id="missing")

        assert result.success is False
        assert db_session.exec(select(UserBook)).all() == []


@pytest.mark.asyncio
class TestAdminCatalog:
    async def test_create_basic_book(self, catalog, enrichment, google):
        result = await create_catalog_book(
            catalog, enrichment, {"title": "Elantris", "isbn": "978-0-7653-1178-8", "published_date": "2005"}
        )

        assert result.success is True
        assert result.created is True
        assert result.enrichment is None
        book = catalog.get(result.book_id)
        assert book.isbn == "9780765311788"
        assert book.info_quality == InfoQuality.basic
        assert google.item_calls == []

    async def test_create_with_google_id_enriches(self, catalog, enrichment):
        result = await create_catalog_book(
            catalog, enrichment, {"title": "The Way of Kings", "google_id": "zyTCAlFPjgYC"}
        )

        assert result.enriched is True
        book = catalog.get(result.book_id)
        assert book.page_count == 1007
        assert book.info_quality == InfoQuality.complete

    async def test_create_existing_returns_it(self, catalog, enrichment, make_book):
        book = make_book(isbn="9780765326355")

        result = await create_catalog_book(catalog, enrichment, {"title": "Copy", "isbn": "9780765326355"})

        assert result.success is True
        assert result.created is False
        assert result.book_id == book.id
        assert "already exists" in result.message

    async def test_create_rejects_invalid_payload(self, catalog, enrichment, db_session):
        result = await create_catalog_book(
            catalog, enrichment, {"title": "", "page_count": 0, "published_date": "someday"}
        )

        assert result.success is False
        assert db_session.exec(select(Book)).all() == []

    async def test_update_partial(self, catalog, enrichment, make_book):
        book = make_book(title="Elantris", publisher="Tor")

        result = await update_catalog_book(catalog, enrichment, book.id, {"page_count": 638})

        assert result.success is True
        stored = catalog.get(book.id)
        assert stored.page_count == 638
        assert stored.publisher == "Tor"
        assert stored.title == "Elantris"

    async def test_update_rejects_taken_identifier(self, catalog, enrichment, make_book):
        make_book(title="Owner", google_id="zyTCAlFPjgYC")
        book = make_book(title="Other")

        result = await update_catalog_book(catalog, enrichment, book.id, {"google_id": "zyTCAlFPjgYC"})

        assert result.success is False
        assert result.message == "The google_id has already been taken."
        assert catalog.get(book.id).google_id is None

    async def test_update_with_google_id_enriches(self, catalog, enrichment, make_book):
        book = make_book(title="The Way of Kings")

        result = await update_catalog_book(catalog, enrichment, book.id, {"google_id": "zyTCAlFPjgYC"})

        assert result.enriched is True
        assert catalog.get(book.id).page_count == 1007

    async def test_update_missing_book(self, catalog, enrichment):
        result = await update_catalog_book(catalog, enrichment, "B-MISS-ING0", {"title": "x"})
        assert result.success is False

    async def test_enrich_single_and_batch(self, catalog, enrichment, make_book):
        book = make_book(google_id="zyTCAlFPjgYC")

        assert (await enrich_catalog_book(catalog, enrichment, "B-MISS-ING0")).success is False
        assert (await enrich_catalog_book(catalog, enrichment, book.id)).success is True
        summary = await enrich_catalog_books(catalog, enrichment, [book.id])
        assert summary.success_count == 1
        assert summary.results[0].message == "Book already enriched"


@pytest.mark.asyncio
class TestSearchEntryPoints:
    async def test_search_prefers_local_match(self, catalog, google, cache, make_book):
        book = make_book(isbn="9780765326355")
        search = BookSearchService([google], cache)

        response = await search_books(search, catalog, "9780765326355")

        assert response.source == "local"
        assert response.books[0].catalog_id == book.id

    async def test_editions_for_missing_book(self, catalog, google, cache):
        response = await book_editions(BookSearchService([google], cache), catalog, "B-MISS-ING0")

        assert response.success is False
        assert response.message == "Book not found"
