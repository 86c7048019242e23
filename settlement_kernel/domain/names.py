"""Display-name normalisation shared by grouping and bank matching."""

import re
import unicodedata

_WHITESPACE = re.compile(r"\s+")


def strip_accents(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_name(value: str | None) -> str:
    """Accent-free, upper-cased, whitespace-collapsed form of a name.

    ``"  João  Silva "`` -> ``"JOAO SILVA"``.  None -> ``""``.
    """
    if not value:
        return ""
    return _WHITESPACE.sub(" ", strip_accents(value)).strip().upper()
