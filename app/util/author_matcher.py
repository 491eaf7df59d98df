"""
Title/author similarity used as the last-resort duplicate check in bulk imports.
"""
import re

from rapidfuzz import fuzz, utils

TITLE_THRESHOLD = 90.0
AUTHOR_THRESHOLD = 85.0


def normalize_text(text: str | None, primary_only: bool = False) -> str:
    if not text:
        return ""
    if primary_only:
        # Drop subtitles and series markers
        text = re.split(r"[:\(\[—]", text)[0]
    normalized = str(utils.default_process(text))
    return re.sub(r"\s+", " ", normalized).strip()


def normalize_author_name(name: str) -> str:
    """
    Normalize author name for matching by:
    - Converting to lowercase
    - Removing common prefixes/suffixes
    - Removing punctuation and extra spaces
    """
    if not name:
        return ""

    normalized = name.lower().strip()

    prefixes = ["dr ", "prof ", "mr ", "mrs ", "ms ", "sir ", "lord "]
    suffixes = [" md", " phd", " jr", " sr", " ii", " iii", " iv"]

    for prefix in prefixes:
        if normalized.startswith(prefix):
            normalized = normalized[len(prefix):].strip()

    for suffix in suffixes:
        if normalized.endswith(suffix):
            normalized = normalized[:-len(suffix)].strip()

    return normalize_text(normalized)


def split_authors(authors: str | None) -> list[str]:
    if not authors:
        return []
    return [a.strip() for a in re.split(r",|;| & | and ", authors) if a.strip()]


def title_score(title: str, candidate: str) -> float:
    a = normalize_text(title, primary_only=True)
    b = normalize_text(candidate, primary_only=True)
    if not a or not b:
        return 0.0
    return max(fuzz.ratio(a, b), fuzz.partial_ratio(a, b))


def author_score(authors: str | None, candidate: str | None) -> float:
    """Best pairwise similarity between any two listed authors."""
    wanted = [normalize_author_name(a) for a in split_authors(authors)]
    known = [normalize_author_name(a) for a in split_authors(candidate)]
    best = 0.0
    for a in wanted:
        for b in known:
            if a and b:
                best = max(best, fuzz.token_sort_ratio(a, b), fuzz.partial_ratio(a, b))
    return best


def is_probable_match(
    title: str,
    authors: str | None,
    candidate_title: str,
    candidate_authors: str | None,
) -> bool:
    if title_score(title, candidate_title) < TITLE_THRESHOLD:
        return False
    if not authors:
        return True
    if not candidate_authors:
        return False
    return author_score(authors, candidate_authors) >= AUTHOR_THRESHOLD
