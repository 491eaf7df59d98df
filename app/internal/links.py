"""
Marketplace purchase links per region, with the affiliate tag injected.
"""
from typing import NamedTuple, Optional, Sequence, Union
from urllib.parse import urlencode

from app.internal.env_settings import AmazonSettings
from app.internal.models import Book, ExternalRecord, PurchaseLink, Region
from app.util.log import logger


class Marketplace(NamedTuple):
    domain: str
    label: str


MARKETPLACES: dict[Region, Marketplace] = {
    Region.US: Marketplace("amazon.com", "Amazon United States"),
    Region.BR: Marketplace("amazon.com.br", "Amazon Brazil"),
    Region.UK: Marketplace("amazon.co.uk", "Amazon United Kingdom"),
    Region.CA: Marketplace("amazon.ca", "Amazon Canada"),
}

# Keys are lowercase with "-" as separator. Language codes used by the
# providers (ISO 639-1, ISO 639-2 and Open Library keys) share this table.
LOCALE_REGIONS: dict[str, Region] = {
    "pt": Region.BR,
    "pt-br": Region.BR,
    "por": Region.BR,
    "en-us": Region.US,
    "en-gb": Region.UK,
    "en-uk": Region.UK,
    "en-ca": Region.CA,
    "fr-ca": Region.CA,
}


def _table_key(value: str) -> str:
    key = value.strip().lower().replace("_", "-")
    return key.removeprefix("/languages/")


def mapped_region(locale: Optional[str]) -> Optional[Region]:
    """Exact locale first, then its bare language subtag. None when the table has neither."""
    if not locale:
        return None
    key = _table_key(locale)
    if key in LOCALE_REGIONS:
        return LOCALE_REGIONS[key]
    return LOCALE_REGIONS.get(key.split("-")[0])


def region_for_locale(locale: Optional[str], default: Region = Region.US) -> Region:
    return mapped_region(locale) or default


def region_for_language(language: Optional[str], default: Region = Region.US) -> Region:
    return region_for_locale(language, default)


BookLike = Union[Book, ExternalRecord]


def search_terms(book: BookLike) -> str:
    if book.isbn:
        return book.isbn
    if book.title and book.authors:
        return f"{book.title} {book.authors}"
    if book.title:
        return book.title
    return "book"


class RegionLinkGenerator:
    def __init__(self, settings: AmazonSettings, default_region: Region = Region.US):
        self.settings = settings
        self.default_region = default_region

    def is_enabled(self) -> bool:
        return bool(self.settings.associate_tag or self.settings.region_tags)

    def search_url(self, query: str, region: Region) -> Optional[str]:
        tag = self.settings.tag_for(region.value)
        if not tag:
            return None
        params = {"k": query, "i": "stripbooks", "tag": tag, "ref": "nb_sb_noss"}
        return f"https://www.{MARKETPLACES[region].domain}/s?{urlencode(params)}"

    def product_url(self, asin: str, region: Region) -> Optional[str]:
        tag = self.settings.tag_for(region.value)
        if not tag:
            return None
        return f"https://www.{MARKETPLACES[region].domain}/dp/{asin}?{urlencode({'tag': tag})}"

    def link_for(self, book: BookLike, region: Region) -> Optional[PurchaseLink]:
        if book.amazon_asin:
            url = self.product_url(book.amazon_asin, region)
        else:
            url = self.search_url(search_terms(book), region)
        if url is None:
            return None
        marketplace = MARKETPLACES[region]
        return PurchaseLink(
            region=region,
            label=marketplace.label,
            domain=marketplace.domain,
            url=url,
        )

    def generate_links(
        self, book: BookLike, regions: Optional[Sequence[Region]] = None
    ) -> list[PurchaseLink]:
        """Links for every requested region. Empty when no affiliate tag is configured."""
        if not self.is_enabled():
            logger.debug("Purchase links disabled, no associate tag configured")
            return []
        links = []
        for region in regions or list(MARKETPLACES):
            link = self.link_for(book, region)
            if link is not None:
                links.append(link)
        return links

    def preferred_link(self, book: BookLike, locale: Optional[str] = None) -> Optional[PurchaseLink]:
        """The single link for the reader's locale, falling back to the book's language."""
        if not self.is_enabled():
            return None
        if locale:
            region = region_for_locale(locale, self.default_region)
        else:
            region = region_for_language(book.language, self.default_region)
        return self.link_for(book, region)
