from app.util.author_matcher import (
    author_score,
    is_probable_match,
    normalize_author_name,
    normalize_text,
    split_authors,
)


def test_normalize_text_primary_only():
    assert normalize_text("Mistborn: The Final Empire", primary_only=True) == "mistborn"
    assert normalize_text(None) == ""


def test_normalize_author_name_drops_titles():
    assert normalize_author_name("Dr Seuss") == normalize_author_name("Seuss")
    assert normalize_author_name("Martin Luther King Jr") == "martin luther king"


def test_split_authors():
    assert split_authors("Neil Gaiman & Terry Pratchett") == ["Neil Gaiman", "Terry Pratchett"]
    assert split_authors("A, B; C and D") == ["A", "B", "C", "D"]
    assert split_authors(None) == []


def test_author_score_reordered_names():
    assert author_score("Sanderson, Brandon", "Brandon Sanderson") >= 85


def test_probable_match():
    assert is_probable_match("Good Omens", "Terry Pratchett", "Good Omens", "Neil Gaiman, Terry Pratchett")
    assert is_probable_match("Good Omens", None, "Good Omens", None)
    assert not is_probable_match("Good Omens", "Terry Pratchett", "Good Omens", None)
    assert not is_probable_match("Good Omens", "Terry Pratchett", "Night Watch", "Terry Pratchett")
