"""
Multi-source book search.

Providers are tried in ascending priority order and the first one that
returns at least one book wins; results are never merged across providers.
Successful responses are cached under a key derived from the normalized
query and the request options.
"""
import hashlib
import json
import re
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from pydantic import ValidationError

from app.internal.catalog import CatalogStore, record_from_book
from app.internal.links import RegionLinkGenerator, mapped_region
from app.internal.models import (
    Book,
    ExternalRecord,
    ProviderAttempt,
    ProviderResult,
    SearchResponse,
)
from app.internal.providers.base import BookSearchProvider, SearchOptions
from app.internal.providers.isbn import clean_isbn, is_isbn_shaped
from app.util.cache import CacheStore
from app.util.exceptions import handle_cache_error, handle_validation_error
from app.util.log import logger

CACHE_TTL_SUCCESS = 604800
LOCAL_PROVIDER_NAME = "Local catalog"
INCLUDE_PURCHASE_LINKS = "purchase_links"


def normalize_query(query: str) -> str:
    normalized = re.sub(r"\s+", " ", query).strip()
    if is_isbn_shaped(normalized):
        return clean_isbn(normalized)
    return normalized


def build_cache_key(normalized_query: str, options: dict[str, Any]) -> str:
    options_hash = hashlib.sha256(
        json.dumps(options, sort_keys=True, default=str).encode()
    ).hexdigest()
    return "multi_search:" + hashlib.sha256((normalized_query + options_hash).encode()).hexdigest()


def build_search_suggestions(query: str) -> list[str]:
    if is_isbn_shaped(query):
        return [
            "Try searching by book title instead of ISBN",
            "Verify the ISBN is correct and try again",
        ]
    return [
        "Try using more specific keywords",
        "Search by ISBN if you have it",
        "Check spelling of title and author name",
    ]


class BookSearchService:
    def __init__(
        self,
        providers: Sequence[BookSearchProvider],
        cache: CacheStore,
        links: Optional[RegionLinkGenerator] = None,
        cache_ttl: int = CACHE_TTL_SUCCESS,
    ):
        # Callers hand over the chain already ordered; it is not re-sorted per call
        self.providers = list(providers)
        self.cache = cache
        self.links = links
        self.cache_ttl = cache_ttl

    def find_provider(self, name: str) -> Optional[BookSearchProvider]:
        for provider in self.providers:
            if provider.name == name:
                return provider
        return None

    def stats(self) -> dict[str, Any]:
        active = [p for p in self.providers if p.is_enabled()]
        return {
            "total_providers": len(self.providers),
            "active_providers": len(active),
            "provider_details": [
                {"name": p.name, "enabled": p.is_enabled(), "priority": p.get_priority()}
                for p in self.providers
            ],
        }

    async def search(
        self,
        term: str,
        max_results: int = 20,
        includes: Optional[Sequence[str]] = None,
        locale: Optional[str] = None,
        catalog: Optional[CatalogStore] = None,
    ) -> SearchResponse:
        includes = list(includes or [])
        normalized = normalize_query(term)
        if not normalized:
            return SearchResponse(
                success=False,
                message="Empty search query",
                suggestions=build_search_suggestions(term),
                original_query=term,
            )

        if catalog is not None:
            local = catalog.find_exact(normalized)
            if local is not None:
                logger.info("Search resolved from local catalog", query=term, book_id=local.id)
                records = [record_from_book(local)]
                self._attach_links(records, includes, locale)
                return SearchResponse(
                    success=True,
                    provider=LOCAL_PROVIDER_NAME,
                    source="local",
                    books=records,
                    total_found=1,
                    message="Found in local catalog",
                    original_query=term,
                )

        cache_key = build_cache_key(
            normalized,
            {"max_results": max_results, "includes": sorted(includes), "locale": locale},
        )
        cached = self._cached_response(cache_key)
        if cached is not None:
            logger.debug("Search cache hit", query=term, cache_key=cache_key)
            return cached

        options = SearchOptions(max_results=max_results, locale=locale)
        region = mapped_region(locale)
        if region is not None:
            options.region = region.value

        attempts: list[ProviderAttempt] = []
        for provider in self.providers:
            if not provider.is_enabled():
                continue
            result = await provider.search(normalized, options)
            attempts.append(
                ProviderAttempt(
                    provider=provider.name,
                    success=result.success,
                    total_found=result.total_found,
                    message=result.message,
                )
            )
            logger.info(
                "Provider attempt",
                provider=provider.name,
                query=normalized,
                success=result.success,
                total_found=result.total_found,
            )
            if result.success and result.total_found > 0:
                return self._success(term, result, attempts, includes, locale, catalog, cache_key)

        logger.info("No provider found results", query=term, providers_tried=len(attempts))
        return SearchResponse(
            success=False,
            provider=None,
            books=[],
            total_found=0,
            message="No books found in any provider",
            suggestions=build_search_suggestions(term),
            providers_tried=attempts,
            original_query=term,
            marketplace_search_url=self._marketplace_search_url(normalized, options),
        )

    def _marketplace_search_url(self, query: str, options: SearchOptions) -> Optional[str]:
        """A tagged marketplace search from the first link-only provider that offers one."""
        for provider in self.providers:
            if not provider.is_enabled():
                continue
            url = provider.search_url(query, options)
            if url:
                return url
        return None

    def _success(
        self,
        term: str,
        result: ProviderResult,
        attempts: list[ProviderAttempt],
        includes: list[str],
        locale: Optional[str],
        catalog: Optional[CatalogStore],
        cache_key: str,
    ) -> SearchResponse:
        books = result.books
        if catalog is not None:
            catalog.annotate(books)
        self._attach_links(books, includes, locale)

        response = SearchResponse(
            success=True,
            provider=result.provider,
            source="external",
            books=books,
            total_found=result.total_found,
            message=result.message,
            providers_tried=attempts,
            original_query=term,
            cached_at=datetime.now(timezone.utc),
        )
        try:
            self.cache.put(cache_key, response.model_dump_json(), self.cache_ttl)
        except (TypeError, ValueError) as e:
            handle_cache_error(e, "put", cache_key)
        return response

    def _cached_response(self, cache_key: str) -> Optional[SearchResponse]:
        cached = self.cache.get(cache_key)
        if cached is None:
            return None
        try:
            return SearchResponse.model_validate_json(cached)
        except ValidationError as e:
            handle_validation_error(e, "search cache", cache_key=cache_key)
            self.cache.forget(cache_key)
            return None

    def _attach_links(
        self, records: list[ExternalRecord], includes: list[str], locale: Optional[str]
    ) -> None:
        if INCLUDE_PURCHASE_LINKS not in includes or self.links is None:
            return
        for record in records:
            link = self.links.preferred_link(record, locale)
            record.purchase_links = [link] if link else []

    async def search_with_provider(
        self,
        provider_name: str,
        query: str,
        options: Optional[SearchOptions] = None,
    ) -> ProviderResult:
        """Run one named provider directly, bypassing the chain and the cache."""
        provider = self.find_provider(provider_name)
        if provider is None:
            return ProviderResult.failure(provider_name, f"Provider '{provider_name}' not found")
        if not provider.is_enabled():
            return ProviderResult.failure(provider_name, f"Provider '{provider_name}' is disabled")
        return await provider.search(normalize_query(query), options)

    async def find_editions(self, book: Book, catalog: CatalogStore) -> SearchResponse:
        """
        Other editions of a catalog book. External variations are tried by the
        identifiers the book has (ASIN, Open Library key, Google id); when none
        succeed, fall back to a local title/author search.
        """
        candidates = [
            ("Amazon Creators", book.amazon_asin),
            ("Open Library", book.open_library_key),
            ("Google Books", book.google_id),
        ]
        attempts: list[ProviderAttempt] = []
        for provider_name, external_id in candidates:
            provider = self.find_provider(provider_name)
            if not external_id or provider is None or not provider.is_enabled():
                continue
            result = await provider.get_variations(external_id)
            attempts.append(
                ProviderAttempt(
                    provider=provider.name,
                    success=result.success,
                    total_found=result.total_found,
                    message=result.message,
                )
            )
            if result.success and result.total_found > 0:
                catalog.annotate(result.books)
                editions = [r for r in result.books if r.catalog_id != book.id]
                if editions:
                    return SearchResponse(
                        success=True,
                        provider=result.provider,
                        books=editions,
                        total_found=len(editions),
                        message=result.message,
                        providers_tried=attempts,
                        original_query=book.title,
                    )

        local = catalog.search_local(book.title, book.authors, exclude_id=book.id)
        records = [record_from_book(b) for b in local]
        return SearchResponse(
            success=bool(records),
            provider=LOCAL_PROVIDER_NAME,
            source="local",
            books=records,
            total_found=len(records),
            message=f"Found {len(records)} editions in local catalog" if records else "No editions found",
            providers_tried=attempts,
            original_query=book.title,
        )
