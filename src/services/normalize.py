# src/services/normalize.py
import hashlib
import re
import unicodedata

SEARCH_STOP_WORDS = frozenset({
    # es
    "con", "de", "del", "la", "las", "el", "los", "y", "a", "al", "en", "para",
    "supremo", "especial", "casero", "casera",
    # en
    "and", "the", "with", "of", "in", "on", "for", "style", "homemade", "special",
})
SEARCH_QUERY_SUFFIX = "food recipe"
MAX_SEARCH_KEYWORDS = 3

_TOKEN_SPLIT = re.compile(r"[\s\-_]+")


def normalize_name(value: str) -> str:
    """Trim and lowercase an ingredient or recipe name."""
    return value.strip().lower()


def names_overlap(left: str, right: str) -> bool:
    """Lenient match: either normalized name contains the other."""
    if not left or not right:
        return False
    return left in right or right in left


def recipe_name_hash(recipe_name: str) -> str:
    return hashlib.md5(normalize_name(recipe_name).encode("utf-8")).hexdigest()


def _strip_accents(text: str) -> str:
    return unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")


def extract_search_keywords(recipe_name: str) -> list[str]:
    """Keep the first few meaningful words of a recipe name."""
    words = [
        word
        for word in _TOKEN_SPLIT.split(normalize_name(recipe_name))
        if len(word) > 2 and word not in SEARCH_STOP_WORDS
    ]
    return [_strip_accents(word) for word in words[:MAX_SEARCH_KEYWORDS]]


def build_search_query(recipe_name: str) -> str:
    keywords = extract_search_keywords(recipe_name)
    return " ".join(keywords + [SEARCH_QUERY_SUFFIX])
