"""
Google Books provider: query building, transformation, and failure handling.
"""
import asyncio
import re

import pytest
from aiohttp import ClientError

from app.internal.env_settings import GoogleBooksSettings
from app.internal.providers.base import SearchOptions
from app.internal.providers.google_books import (
    GoogleBooksProvider,
    build_search_query,
    remove_articles,
    secure_thumbnail,
)

VOLUMES_PATTERN = re.compile(r"^https://www\.googleapis\.com/books/v1/volumes\?.*")


def volume_url(google_id: str) -> re.Pattern:
    return re.compile(rf"^https://www\.googleapis\.com/books/v1/volumes/{google_id}(\?.*)?$")


class TestQueryBuilding:
    def test_isbn_query_uses_isbn_prefix(self):
        assert build_search_query("978-0-7653-2635-5", SearchOptions()) == "isbn:9780765326355"

    def test_title_and_author_hints(self):
        options = SearchOptions(title="Mistborn", author="Sanderson")
        assert build_search_query("anything", options) == "intitle:Mistborn inauthor:Sanderson"

    def test_free_text_drops_leading_article(self):
        assert build_search_query("The Way of Kings", SearchOptions()) == "intitle:Way Kings"

    def test_remove_articles_keeps_meaningful_short_words(self):
        assert remove_articles("An AI to watch") == "AI watch"

    def test_remove_articles_never_returns_empty(self):
        assert remove_articles("of") == "of"

    def test_secure_thumbnail(self):
        links = {"thumbnail": "http://books.google.com/x?id=1&edge=curl"}
        assert secure_thumbnail(links) == "https://books.google.com/x?id=1"
        assert secure_thumbnail(None) is None


@pytest.mark.asyncio
class TestGoogleBooksSearch:
    async def test_isbn_search_returns_record(
        self, mock_client_session, mock_google_books_response, google_settings, recorded
    ):
        mock_client_session._mocked.get(VOLUMES_PATTERN, payload=mock_google_books_response)
        provider = GoogleBooksProvider(mock_client_session, google_settings)

        result = await provider.search("9780765326355")

        assert result.success is True
        assert result.provider == "Google Books"
        assert result.total_found == 1
        book = result.books[0]
        assert book.isbn == "9780765326355"
        assert book.isbn_10 == "0765326353"
        assert book.google_id == "zyTCAlFPjgYC"
        assert book.authors == "Brandon Sanderson"
        assert book.page_count == 1007
        assert book.thumbnail.startswith("https://")
        assert "&edge=curl" not in book.thumbnail

        params = recorded(mock_client_session._mocked)[0]["params"]
        assert params["q"] == "isbn:9780765326355"
        assert params["printType"] == "books"
        assert "key" not in params

    async def test_api_key_and_location_headers(self, mock_client_session, mock_google_books_response, recorded):
        settings = GoogleBooksSettings(api_key="secret", location_ip="200.1.2.3")
        mock_client_session._mocked.get(VOLUMES_PATTERN, payload=mock_google_books_response)
        provider = GoogleBooksProvider(mock_client_session, settings)

        await provider.search("Mistborn")

        request = recorded(mock_client_session._mocked)[0]
        assert request["params"]["key"] == "secret"
        assert request["headers"]["X-Forwarded-For"] == "200.1.2.3"

    async def test_short_single_word_adds_ebook_filter(
        self, mock_client_session, mock_google_books_response, google_settings, recorded
    ):
        mock_client_session._mocked.get(VOLUMES_PATTERN, payload=mock_google_books_response)
        provider = GoogleBooksProvider(mock_client_session, google_settings)

        await provider.search("It")

        assert recorded(mock_client_session._mocked)[0]["params"]["filter"] == "ebooks"

    async def test_empty_response_is_failure(
        self, mock_client_session, mock_google_books_empty_response, google_settings
    ):
        mock_client_session._mocked.get(VOLUMES_PATTERN, payload=mock_google_books_empty_response)
        provider = GoogleBooksProvider(mock_client_session, google_settings)

        result = await provider.search("asdkjalksdj-not-a-book")

        assert result.success is False
        assert result.total_found == 0
        assert result.books == []

    async def test_items_without_title_are_dropped(self, mock_client_session, google_settings):
        payload = {
            "items": [
                {"id": "a", "volumeInfo": {}},
                {"id": "b", "volumeInfo": {"title": "Elantris"}},
            ]
        }
        mock_client_session._mocked.get(VOLUMES_PATTERN, payload=payload)
        provider = GoogleBooksProvider(mock_client_session, google_settings)

        result = await provider.search("Elantris")

        assert result.success is True
        assert [b.google_id for b in result.books] == ["b"]
        assert result.books[0].language is None
        assert result.books[0].categories is None

    async def test_malformed_item_does_not_fail_batch(self, mock_client_session, google_settings):
        payload = {
            "items": [
                {"id": "a", "volumeInfo": {"title": "Warbreaker", "pageCount": "many"}},
                {"volumeInfo": {"title": "No id"}},
                {"id": "b", "volumeInfo": {"title": "Elantris", "pageCount": 496}},
            ]
        }
        mock_client_session._mocked.get(VOLUMES_PATTERN, payload=payload)
        provider = GoogleBooksProvider(mock_client_session, google_settings)

        result = await provider.search("Elantris")

        assert result.success is True
        assert [b.google_id for b in result.books] == ["b"]
        assert result.books[0].page_count == 496

    async def test_http_error_becomes_failed_result(self, mock_client_session, google_settings):
        mock_client_session._mocked.get(VOLUMES_PATTERN, status=500)
        provider = GoogleBooksProvider(mock_client_session, google_settings)

        result = await provider.search("Mistborn")

        assert result.success is False
        assert "HTTP 500" in result.message

    async def test_network_error_becomes_failed_result(self, mock_client_session, google_settings):
        mock_client_session._mocked.get(VOLUMES_PATTERN, exception=ClientError("Connection refused"))
        provider = GoogleBooksProvider(mock_client_session, google_settings)

        result = await provider.search("Mistborn")

        assert result.success is False

    async def test_timeout_becomes_failed_result(self, mock_client_session, google_settings):
        mock_client_session._mocked.get(VOLUMES_PATTERN, exception=asyncio.TimeoutError())
        provider = GoogleBooksProvider(mock_client_session, google_settings)

        result = await provider.search("Mistborn")

        assert result.success is False
        assert "timed out" in result.message

    async def test_rate_limit_becomes_failed_result(self, mock_client_session, google_settings):
        mock_client_session._mocked.get(VOLUMES_PATTERN, status=429)
        provider = GoogleBooksProvider(mock_client_session, google_settings)

        result = await provider.search("Mistborn")

        assert result.success is False
        assert "rate limited" in result.message

    async def test_disabled_provider_makes_no_request(self, mock_client_session, recorded):
        provider = GoogleBooksProvider(mock_client_session, GoogleBooksSettings(enabled=False))

        result = await provider.search("Mistborn")

        assert result.success is False
        assert recorded(mock_client_session._mocked) == []


@pytest.mark.asyncio
class TestGoogleBooksItemsAndVariations:
    async def test_get_items_truncates_to_ten(self, mock_client_session, google_settings, recorded):
        ids = [f"vol{i}" for i in range(12)]
        for google_id in ids[:10]:
            mock_client_session._mocked.get(
                volume_url(google_id),
                payload={"id": google_id, "volumeInfo": {"title": f"Book {google_id}"}},
            )
        provider = GoogleBooksProvider(mock_client_session, google_settings)

        result = await provider.get_items(ids)

        assert result.success is True
        assert [b.google_id for b in result.books] == ids[:10]
        assert len(recorded(mock_client_session._mocked)) == 10

    async def test_get_items_skips_missing_volume(self, mock_client_session, google_settings):
        mock_client_session._mocked.get(
            volume_url("gone"), status=404, payload={"error": {"message": "The volume ID could not be found."}}
        )
        mock_client_session._mocked.get(
            volume_url("kept"), payload={"id": "kept", "volumeInfo": {"title": "Elantris"}}
        )
        provider = GoogleBooksProvider(mock_client_session, google_settings)

        result = await provider.get_items(["gone", "kept"])

        assert result.success is True
        assert [b.google_id for b in result.books] == ["kept"]

    async def test_get_items_rate_limit_fails_batch(self, mock_client_session, google_settings):
        mock_client_session._mocked.get(volume_url("first"), status=429)
        provider = GoogleBooksProvider(mock_client_session, google_settings)

        result = await provider.get_items(["first", "second"])

        assert result.success is False
        assert "rate limited" in result.message

    async def test_get_variations_excludes_source_volume(
        self, mock_client_session, google_settings, recorded
    ):
        mock_client_session._mocked.get(
            volume_url("orig"),
            payload={
                "id": "orig",
                "volumeInfo": {"title": "Mistborn", "authors": ["Brandon Sanderson", "Other"]},
            },
        )
        mock_client_session._mocked.get(
            VOLUMES_PATTERN,
            payload={
                "items": [
                    {"id": "orig", "volumeInfo": {"title": "Mistborn"}},
                    {"id": "pb", "volumeInfo": {"title": "Mistborn (Paperback)"}},
                ]
            },
        )
        provider = GoogleBooksProvider(mock_client_session, google_settings)

        result = await provider.get_variations("orig")

        assert result.success is True
        assert [b.google_id for b in result.books] == ["pb"]
        queries = [r["params"].get("q") for r in recorded(mock_client_session._mocked)]
        assert 'intitle:"Mistborn" inauthor:"Brandon Sanderson"' in queries

    async def test_get_variations_without_matches_is_failure(self, mock_client_session, google_settings):
        mock_client_session._mocked.get(
            volume_url("orig"), payload={"id": "orig", "volumeInfo": {"title": "Mistborn"}}
        )
        mock_client_session._mocked.get(
            VOLUMES_PATTERN, payload={"items": [{"id": "orig", "volumeInfo": {"title": "Mistborn"}}]}
        )
        provider = GoogleBooksProvider(mock_client_session, google_settings)

        result = await provider.get_variations("orig")

        assert result.success is False
        assert result.books == []

    async def test_get_variations_missing_volume(self, mock_client_session, google_settings):
        mock_client_session._mocked.get(volume_url("gone"), status=404)
        provider = GoogleBooksProvider(mock_client_session, google_settings)

        result = await provider.get_variations("gone")

        assert result.success is False
