"""
Wiring for a running process: one HTTP session, one cache, one provider chain
and one database engine shared by every search and enrichment call.
"""
from contextlib import asynccontextmanager, contextmanager
from typing import AsyncIterator, Iterator, Optional

from aiohttp import ClientSession
from sqlalchemy import Engine

from app.internal.book_search import BookSearchService
from app.internal.catalog import CatalogStore
from app.internal.enrichment import BookEnrichmentService
from app.internal.env_settings import Settings
from app.internal.links import RegionLinkGenerator
from app.internal.models import Region
from app.internal.providers.base import BookSearchProvider
from app.internal.providers.registry import build_providers
from app.util.cache import CacheStore, TTLCache
from app.util.db import build_engine, create_tables, get_session
from app.util.log import logger, setup_logging


class BookMergeServices:
    def __init__(
        self,
        settings: Settings,
        engine: Engine,
        providers: list[BookSearchProvider],
        cache: CacheStore,
    ):
        self.settings = settings
        self.engine = engine
        self.providers = providers
        self.cache = cache
        self.links = RegionLinkGenerator(
            settings.amazon, default_region=Region(settings.app.default_region)
        )
        self.search = BookSearchService(
            providers,
            cache,
            links=self.links,
            cache_ttl=settings.app.search_cache_ttl,
        )
        self.enrichment = BookEnrichmentService(
            providers,
            batch_size=settings.app.enrichment_batch_size,
            batch_delay=settings.app.enrichment_batch_delay,
        )

    @contextmanager
    def catalog(self) -> Iterator[CatalogStore]:
        """A catalog bound to a fresh database session."""
        sessions = get_session(self.engine)
        try:
            yield CatalogStore(next(sessions))
        finally:
            sessions.close()


@asynccontextmanager
async def open_services(
    settings: Optional[Settings] = None,
    engine: Optional[Engine] = None,
    cache: Optional[CacheStore] = None,
) -> AsyncIterator[BookMergeServices]:
    settings = settings or Settings()
    setup_logging(settings.app)
    if engine is None:
        engine = build_engine(settings)
        create_tables(engine)
    cache = cache or TTLCache(maxsize=10000)

    async with ClientSession() as client_session:
        providers = build_providers(client_session, settings, cache)
        logger.info("Services started", version=settings.app.version)
        yield BookMergeServices(settings, engine, providers, cache)
