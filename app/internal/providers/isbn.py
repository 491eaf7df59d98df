"""
ISBN and Amazon identifier helpers shared by every provider.
"""

import re

_ASIN_PATTERN = re.compile(r"^B[0-9A-Z]{9}$")
_OPEN_LIBRARY_KEY_PATTERN = re.compile(r"^(/(works|books)/)?OL\d+[MW]$")


def clean_isbn(value: str) -> str:
    """Strip everything except digits and X."""
    return re.sub(r"[^0-9X]", "", value.upper())


def is_isbn_shaped(value: str) -> bool:
    """True for anything that reduces to 10 or 13 characters of ISBN.

    The check digit is not verified so providers can still resolve
    slightly mistyped identifiers.
    """
    clean = clean_isbn(value)
    if len(clean) not in (10, 13):
        return False
    # X is only allowed as the final check character
    return clean[:-1].isdigit()


def validate_isbn10(isbn: str) -> bool:
    """Validate ISBN-10 format and checksum."""
    isbn = clean_isbn(isbn)
    if len(isbn) != 10 or not isbn[:-1].isdigit():
        return False

    total = sum((10 - i) * int(isbn[i]) for i in range(9))
    check = (11 - (total % 11)) % 11
    return isbn[9] == ("X" if check == 10 else str(check))


def validate_isbn13(isbn: str) -> bool:
    """Validate ISBN-13 format and checksum."""
    isbn = clean_isbn(isbn)
    if len(isbn) != 13 or not isbn.isdigit():
        return False

    total = sum(int(isbn[i]) * (1 if i % 2 == 0 else 3) for i in range(12))
    check = (10 - (total % 10)) % 10
    return int(isbn[12]) == check


def isbn10_to_isbn13(isbn10: str) -> str | None:
    """
    Convert ISBN-10 to ISBN-13.
    Returns None if the ISBN-10 is invalid.
    """
    isbn10 = clean_isbn(isbn10)
    if not validate_isbn10(isbn10):
        return None

    base = "978" + isbn10[:-1]
    total = sum(int(base[i]) * (1 if i % 2 == 0 else 3) for i in range(12))
    check = (10 - (total % 10)) % 10
    return base + str(check)


def isbn13_to_isbn10(isbn13: str) -> str | None:
    """
    Convert ISBN-13 to ISBN-10.
    Only 978-prefixed ISBN-13s have an ISBN-10 form.
    """
    isbn13 = clean_isbn(isbn13)
    if not validate_isbn13(isbn13) or not isbn13.startswith("978"):
        return None

    base = isbn13[3:-1]
    total = sum((10 - i) * int(base[i]) for i in range(9))
    check = (11 - (total % 11)) % 11
    return base + ("X" if check == 10 else str(check))


def split_isbn(isbn: str | None) -> tuple[str | None, str | None]:
    """Return (isbn_10, isbn_13) for a raw identifier, filling in the other form where possible."""
    if not isbn:
        return None, None
    clean = clean_isbn(isbn)
    if len(clean) == 13:
        return isbn13_to_isbn10(clean), clean
    if len(clean) == 10:
        return clean, isbn10_to_isbn13(clean)
    return None, None


def is_asin(value: str) -> bool:
    """Amazon-native ids. ISBN-10s double as ASINs for print books, so only B-prefixed ids count."""
    return bool(_ASIN_PATTERN.match(value.strip().upper()))


def is_open_library_key(value: str) -> bool:
    return bool(_OPEN_LIBRARY_KEY_PATTERN.match(value.strip()))
