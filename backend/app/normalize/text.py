from __future__ import annotations

import unicodedata


def fold(value: str) -> str:
    """Lowercase and strip diacritics ("Depósito" -> "deposito")."""
    decomposed = unicodedata.normalize("NFD", (value or "").lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))
