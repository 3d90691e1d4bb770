import re
import unicodedata
from typing import Optional


def strip_accents(text: str) -> str:
    """'Fantasía' -> 'Fantasia'. Keeps everything else as is."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(c for c in decomposed if unicodedata.category(c) != "Mn")


def normalize(text: str) -> str:
    """Lowercase, accent-free, trimmed. Used before every pattern table."""
    return strip_accents(text.lower()).strip()


def _fold_char(c: str) -> str:
    folded = strip_accents(c.lower())
    return folded if len(folded) == 1 else c


def fold(text: str) -> str:
    """
    Like normalize() but position-preserving: fold(text)[i] corresponds to text[i].
    Lets a match found on the folded text be sliced out of the original.
    """
    return "".join(_fold_char(c) for c in text)


def search_folded(pattern: str, text: str, group: int = 1) -> Optional[str]:
    """
    Search an accent-free, lowercase `pattern` in `text` ignoring case and accents,
    and return the matched group cut from the original text.
    """
    match = re.search(pattern, fold(text))
    if not match:
        return None
    start, end = match.span(group)
    if start < 0:
        return None
    return text[start:end]
