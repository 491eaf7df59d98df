"""
Amazon Creators API provider: paged keyword search, ASIN batch lookup and
variations, with a per-query rate-limit short circuit.
"""
import asyncio
import hashlib

from aiohttp import ClientSession

from app.internal.amazon.client import AmazonCreatorsClient
from app.internal.amazon.token import PROVIDER_NAME
from app.internal.amazon.transform import transform_item
from app.internal.env_settings import AmazonSettings
from app.internal.models import ExternalRecord, ProviderResult, Region
from app.internal.providers.base import BookSearchProvider, SearchOptions
from app.internal.providers.isbn import clean_isbn, is_isbn_shaped
from app.util.cache import CacheStore
from app.util.exceptions import (
    MalformedProviderResponseError,
    ProviderError,
    ProviderRateLimitedError,
)
from app.util.log import logger

MAX_RESULTS = 10
MAX_PAGES_CAP = 10
DEFAULT_REGION = Region.BR
RATE_LIMIT_MESSAGE = "Amazon API rate limited - try again later"


def rate_limit_key(query: str) -> str:
    return "amazon_rate_limited:" + hashlib.md5(query.encode()).hexdigest()


def build_search_query(query: str, options: SearchOptions) -> str:
    if is_isbn_shaped(query):
        return clean_isbn(query)
    if options.title and options.author:
        return f"{options.title} {options.author}"
    return query.strip()


def result_items(response: dict, key: str) -> list[dict]:
    """The item list under ``key``; a missing section means no items."""
    section = response.get(key) or {}
    if not isinstance(section, dict):
        raise MalformedProviderResponseError(PROVIDER_NAME, f"Unexpected {key} shape")
    items = section.get("Items") or []
    if not isinstance(items, list):
        raise MalformedProviderResponseError(PROVIDER_NAME, f"Unexpected {key} items")
    return items


def resolve_region(options: SearchOptions) -> Region:
    if options.region:
        try:
            return Region(options.region.upper())
        except ValueError:
            logger.warning("Unknown Amazon region, using default", region=options.region)
    return DEFAULT_REGION


class AmazonCreatorsProvider(BookSearchProvider):
    name = "Amazon Creators"
    priority = 3

    def __init__(
        self,
        client_session: ClientSession,
        settings: AmazonSettings,
        api_client: AmazonCreatorsClient,
        cache: CacheStore,
        rate_limit_ttl: int = 3600,
    ):
        super().__init__(client_session)
        self.settings = settings
        self.api_client = api_client
        self.cache = cache
        self.rate_limit_ttl = rate_limit_ttl

    def is_enabled(self) -> bool:
        return self.settings.creators_enabled and self.api_client.is_configured()

    def _records(self, items: list[dict]) -> list[ExternalRecord]:
        return self.transform_each(items, lambda item: transform_item(item, self.name))

    def is_rate_limited(self, query: str) -> bool:
        return self.cache.has(rate_limit_key(query))

    def mark_rate_limited(self, query: str) -> None:
        """Skip the network for this query until the flag expires."""
        self.cache.put(rate_limit_key(query), True, self.rate_limit_ttl)
        logger.warning("Amazon query marked as rate limited", query=query, ttl=self.rate_limit_ttl)

    async def _search(self, query: str, options: SearchOptions) -> ProviderResult:
        if self.is_rate_limited(query):
            return self.failure(RATE_LIMIT_MESSAGE)

        search_query = build_search_query(query, options)
        region = resolve_region(options)
        try:
            items = await self._fetch_pages(query, search_query, region, options)
        except ProviderRateLimitedError:
            self.mark_rate_limited(query)
            raise
        return self.result(self._records(items))

    async def _fetch_pages(
        self, query: str, search_query: str, region: Region, options: SearchOptions
    ) -> list[dict]:
        item_count = min(options.max_results, MAX_RESULTS)
        max_pages = min(options.pages or self.settings.max_pages, MAX_PAGES_CAP)
        all_items: list[dict] = []

        for page in range(1, max_pages + 1):
            logger.info(
                "Amazon Creators search page",
                query=search_query,
                region=region.value,
                page=page,
                max_pages=max_pages,
            )
            try:
                response = await self.api_client.search_items(
                    search_query, region, item_count=item_count, item_page=page
                )
            except ProviderError as e:
                if page == 1:
                    raise
                if isinstance(e, ProviderRateLimitedError):
                    self.mark_rate_limited(query)
                logger.warning(
                    "Amazon Creators pagination failed, keeping earlier pages",
                    page=page,
                    error=str(e),
                )
                break

            items = result_items(response, "SearchResult")
            if not items:
                break
            all_items.extend(items)
            if len(items) < item_count:
                break
            if page < max_pages:
                await asyncio.sleep(self.settings.page_delay)

        return all_items

    async def _get_items(self, ids: list[str]) -> ProviderResult:
        region = DEFAULT_REGION
        logger.info("Amazon Creators GetItems", asins=ids, region=region.value)
        response = await self.api_client.get_items(ids, region)
        items = result_items(response, "ItemsResult")
        return self.result(self._records(items), "No items found for provided ASINs")

    async def _get_variations(self, external_id: str) -> ProviderResult:
        logger.info("Amazon Creators GetVariations", asin=external_id)
        response = await self.api_client.get_variations(external_id, DEFAULT_REGION)
        items = result_items(response, "VariationsResult")
        return self.result(self._records(items), "No variations found for this ASIN")
