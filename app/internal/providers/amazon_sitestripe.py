"""
Link-only Amazon provider. It never returns searchable records; it only knows
how to turn a query into an affiliate-tagged marketplace search URL.
"""
from typing import Optional

from aiohttp import ClientSession

from app.internal.env_settings import AmazonSettings
from app.internal.links import RegionLinkGenerator, region_for_locale
from app.internal.models import ProviderResult, Region
from app.internal.providers.base import BookSearchProvider, SearchOptions
from app.internal.providers.isbn import clean_isbn, is_isbn_shaped


class AmazonSiteStripeProvider(BookSearchProvider):
    name = "Amazon SiteStripe"
    priority = 4

    def __init__(
        self,
        client_session: ClientSession,
        settings: AmazonSettings,
        links: RegionLinkGenerator,
    ):
        super().__init__(client_session)
        self.settings = settings
        self.links = links

    def is_enabled(self) -> bool:
        return self.settings.sitestripe_enabled and bool(self.settings.associate_tag)

    def resolve_region(self, options: SearchOptions) -> Region:
        if options.region and options.region.upper() in Region.__members__:
            return Region(options.region.upper())
        return region_for_locale(options.locale, Region.US)

    def search_url(self, query: str, options: Optional[SearchOptions] = None) -> Optional[str]:
        options = options or SearchOptions()
        if is_isbn_shaped(query):
            terms = clean_isbn(query)
        elif options.title and options.author:
            terms = f"{options.title} {options.author}"
        else:
            terms = query.strip()
        return self.links.search_url(terms, self.resolve_region(options))

    async def _search(self, query: str, options: SearchOptions) -> ProviderResult:
        return self.failure("No books found")

    async def _get_items(self, ids: list[str]) -> ProviderResult:
        return self.failure("Amazon SiteStripe does not support item lookup")

    async def _get_variations(self, external_id: str) -> ProviderResult:
        return self.failure("Amazon SiteStripe does not support variations")
