"""
Amazon item (PA-API 5.0 shape) to ExternalRecord.
"""
import re
from typing import Any, Optional

from app.internal.models import ExternalRecord
from app.internal.providers.isbn import is_asin
from app.util.log import logger

_BOOK_BINDINGS = (
    "paperback", "hardcover", "kindle", "ebook", "mass market",
    "library binding", "board book", "spiral", "loose leaf", "audio",
)
_NON_BOOK_BINDINGS = (
    "toy", "game", "accessory", "electronics", "video game", "calendar", "cards", "dvd",
)
_BOOK_GROUPS = {"book", "ebook", "audible"}
_NON_BOOK_GROUPS = {"toy", "home", "sports"}

# Storefront browse nodes that describe promotions rather than subjects
_NOISE_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"livros? até r\$",
        r"ebooks? até r\$",
        r"top asins?",
        r"guia de compras",
        r"promo(ção|cao)?",
        r"cupom",
        r"off (no|em)",
        r"termos e condi(ções|coes)",
        r"n(ão|ao) aplicad",
        r"lan(ç|c)amentos",
        r"ofertas?",
        r"mais amados",
        r"mais lidos",
        r"preferidos",
        r"p(á|a)gina do autor",
        r"comece a sua leitura",
        r"em oferta",
        r"kindle unlimited",
        r"catalogo kindle",
        r"cashback",
        r"pr(é|e)-venda",
        r"aniversa(á|a)rio",
        r"editora ",
        r"obrigado por",
        r"sele(ç|c)(ã|a)o participante",
        r"categorias$",
        r"compra de ebook",
        r"^[a-f0-9]{8}-[a-f0-9]{4}",
        r"^trade$",
        r"^book$",
        r"^capa (comum|dura)$",
        r"ebook kindle$",
    )
]
_PUBLISHER_NAMES = {
    "ciranda cultural",
    "alta books",
    "companhia das letras",
    "rocco",
    "darkside",
    "intrínseca",
    "nova fronteira",
    "globo livros",
}

_SIZE_TOKEN = re.compile(r"(\._[A-Z]{2}\d+_|\._AC_[A-Z]{2}\d+_)")
_BARE_IMAGE = re.compile(r"/images/I/([A-Za-z0-9+%-]+)\.([a-z]{3,4})$", re.IGNORECASE)


def _dig(data: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def is_valid_isbn_value(value: str) -> bool:
    clean = value.replace("-", "").replace(" ", "").upper()
    if is_asin(clean):
        return False
    if len(clean) == 10:
        return bool(re.match(r"^[0-9]{9}[0-9X]$", clean))
    if len(clean) == 13:
        return clean.isdigit()
    return False


def _first_valid(external_ids: dict, key: str) -> Optional[str]:
    values = _dig(external_ids, key, "DisplayValues") or []
    if values and is_valid_isbn_value(values[0]):
        return values[0]
    return None


def extract_isbn(item_info: dict) -> Optional[str]:
    """ISBN13s, then ISBN10s, then a 978/979 EAN."""
    external_ids = item_info.get("ExternalIds") or {}
    isbn = _first_valid(external_ids, "ISBN13s") or _first_valid(external_ids, "ISBN10s")
    if isbn:
        return isbn
    for ean in _dig(external_ids, "EANs", "DisplayValues") or []:
        if len(ean) == 13 and ean.startswith(("978", "979")) and is_valid_isbn_value(ean):
            return ean
    return None


def extract_authors(item_info: dict) -> Optional[str]:
    contributors = _dig(item_info, "ByLineInfo", "Contributors") or []
    names = [c["Name"] for c in contributors if isinstance(c, dict) and c.get("Name")]
    return ", ".join(names) or None


def high_resolution_url(url: str) -> str:
    if _SIZE_TOKEN.search(url):
        return _SIZE_TOKEN.sub("._SL1500_", url)
    match = _BARE_IMAGE.search(url)
    if match:
        image_id, extension = match.groups()
        return url[: match.start()] + f"/images/I/{image_id}._SL1500_.{extension}"
    return url


def extract_thumbnail(item: dict) -> Optional[str]:
    primary = _dig(item, "Images", "Primary")
    if not primary:
        return None
    url = (
        _dig(primary, "Large", "URL")
        or _dig(primary, "Medium", "URL")
        or _dig(primary, "Small", "URL")
    )
    return high_resolution_url(url) if url else None


def extract_language(item_info: dict) -> Optional[str]:
    languages = _dig(item_info, "ContentInfo", "Languages", "DisplayValues") or []
    if not languages:
        return None
    first = languages[0]
    if isinstance(first, dict):
        return first.get("DisplayValue")
    return first if isinstance(first, str) else None


def extract_browse_nodes(item: dict) -> list[str]:
    categories: list[str] = []
    for node in _dig(item, "BrowseNodeInfo", "BrowseNodes") or []:
        if not node.get("DisplayName"):
            continue
        hierarchy = [node["DisplayName"]]
        ancestor = node.get("Ancestor")
        while ancestor:
            if ancestor.get("DisplayName"):
                hierarchy.insert(0, ancestor["DisplayName"])
            ancestor = ancestor.get("Ancestor")
        categories.extend(hierarchy)
    return categories


def extract_classifications(item_info: dict) -> list[str]:
    values = [
        _dig(item_info, "Classifications", "Binding", "DisplayValue"),
        _dig(item_info, "Classifications", "ProductGroup", "DisplayValue"),
    ]
    return [v for v in values if v]


def filter_categories(categories: list[str]) -> Optional[list[str]]:
    seen: set[str] = set()
    filtered = []
    for category in categories:
        if category in seen:
            continue
        seen.add(category)
        if any(p.search(category) for p in _NOISE_PATTERNS):
            continue
        if category.lower() in _PUBLISHER_NAMES:
            continue
        filtered.append(category)
    return filtered or None


def is_actual_book(item_info: dict) -> bool:
    binding = _dig(item_info, "Classifications", "Binding", "DisplayValue")
    if binding:
        binding = binding.lower()
        if any(b in binding for b in _BOOK_BINDINGS):
            return True
        if any(b in binding for b in _NON_BOOK_BINDINGS):
            return False

    group = _dig(item_info, "Classifications", "ProductGroup", "DisplayValue")
    if group:
        group = group.lower()
        if group in _BOOK_GROUPS:
            return True
        if group in _NON_BOOK_GROUPS:
            return False

    pages = _dig(item_info, "ContentInfo", "PagesCount", "DisplayValue")
    if pages and int(pages) > 0:
        return True
    return extract_isbn(item_info) is not None


def transform_item(item: dict, provider: str) -> Optional[ExternalRecord]:
    item_info = item.get("ItemInfo") or {}
    title = _dig(item_info, "Title", "DisplayValue")
    if not title:
        return None
    if not is_actual_book(item_info):
        logger.debug("Dropping non-book Amazon item", asin=item.get("ASIN"), title=title)
        return None

    isbn = extract_isbn(item_info)
    external_ids = item_info.get("ExternalIds") or {}
    pages = _dig(item_info, "ContentInfo", "PagesCount", "DisplayValue")
    rating = _dig(item, "CustomerReviews", "StarRating", "Value")
    rating_count = _dig(item, "CustomerReviews", "Count")
    features = _dig(item_info, "Features", "DisplayValues")

    return ExternalRecord(
        provider=provider,
        amazon_asin=item.get("ASIN"),
        title=title,
        authors=extract_authors(item_info),
        isbn=isbn,
        isbn_10=_first_valid(external_ids, "ISBN10s"),
        isbn_13=_first_valid(external_ids, "ISBN13s"),
        thumbnail=extract_thumbnail(item),
        description=" ".join(features) if features else None,
        publisher=_dig(item_info, "ByLineInfo", "Manufacturer", "DisplayValue"),
        published_date=_dig(item_info, "ContentInfo", "PublicationDate", "DisplayValue"),
        page_count=int(pages) if pages else None,
        language=extract_language(item_info),
        categories=filter_categories(extract_browse_nodes(item) + extract_classifications(item_info)),
        maturity_rating=_dig(item_info, "ContentRating", "AudienceRating", "DisplayValue"),
        info_link=item.get("DetailPageURL"),
        amazon_rating=float(rating) if rating is not None else None,
        amazon_rating_count=int(rating_count) if rating_count is not None else None,
    )
