from aiohttp import ClientSession

from app.internal.amazon.client import AmazonCreatorsClient
from app.internal.amazon.token import AmazonOAuthTokenManager
from app.internal.env_settings import Settings
from app.internal.links import RegionLinkGenerator
from app.internal.models import Region
from app.internal.providers.amazon_creators import AmazonCreatorsProvider
from app.internal.providers.amazon_pa_api import AmazonPaApiProvider
from app.internal.providers.amazon_sitestripe import AmazonSiteStripeProvider
from app.internal.providers.base import BookSearchProvider
from app.internal.providers.google_books import GoogleBooksProvider
from app.internal.providers.open_library import OpenLibraryProvider
from app.util.cache import CacheStore
from app.util.log import logger


def select_amazon_provider(
    configured: str,
    creators: AmazonCreatorsProvider,
    pa_api: AmazonPaApiProvider,
) -> BookSearchProvider:
    """The configured Amazon search provider, falling back to Creators when it is usable."""
    if configured == "creators" and creators.is_enabled():
        return creators
    if configured == "pa-api" and pa_api.is_enabled():
        return pa_api
    if creators.is_enabled():
        return creators
    return pa_api


def build_providers(
    client_session: ClientSession,
    settings: Settings,
    cache: CacheStore,
) -> list[BookSearchProvider]:
    """Build the provider chain once, ordered by ascending priority."""
    token_manager = AmazonOAuthTokenManager(client_session, settings.amazon, cache)
    api_client = AmazonCreatorsClient(client_session, settings.amazon, token_manager)
    creators = AmazonCreatorsProvider(
        client_session,
        settings.amazon,
        api_client,
        cache,
        rate_limit_ttl=settings.app.rate_limit_ttl,
    )
    pa_api = AmazonPaApiProvider(client_session, settings.amazon)
    links = RegionLinkGenerator(settings.amazon, default_region=Region(settings.app.default_region))

    providers: list[BookSearchProvider] = [
        GoogleBooksProvider(client_session, settings.google_books),
        OpenLibraryProvider(client_session, settings.open_library),
        select_amazon_provider(settings.amazon.provider, creators, pa_api),
        AmazonSiteStripeProvider(client_session, settings.amazon, links),
    ]
    # sorted() is stable, so equal priorities keep the order above
    providers = sorted(providers, key=lambda p: p.get_priority())
    logger.info(
        "Book search providers configured",
        providers=[(p.name, p.get_priority(), p.is_enabled()) for p in providers],
    )
    return providers
