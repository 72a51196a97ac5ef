"""
Extraction normalizer.

Input is whatever the document-extraction model produced: a loosely typed
object with `entries` (or `items`) plus some free text. Output is a list of
typed, deduplicated ExtractionCandidate rows. RawExtraction / raw entry dicts
are not allowed past this module; callers only ever see candidates.

Steps per entry (in order):
  1. label: drop empty labels and aggregate rows (total / saldo / ...)
  2. signed amount: drop unparseable or zero, keep the magnitude
  3. currency: USD vs home currency (ARS)
  4. direction: explicit kind > sign > income keywords > expense
  5. category: explicit > savings keyword > keyword categorizer
  6. date: explicit ISO date > document-level date
  7. dedupe on (type, category, label, amount, date, currency)
  8. stop at max_rows
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from datetime import date
from typing import Any, Dict, Iterable, List, Literal, Optional, Set, Tuple

from pydantic import BaseModel, ConfigDict

from backend.app.normalize.amounts import parse_signed_amount
from backend.app.normalize.categorize import TxnType, categorize
from backend.app.normalize.dates import date_from_text, is_iso_date
from backend.app.normalize.text import fold

Currency = Literal["ARS", "USD"]

HOME_CURRENCY: Currency = "ARS"
FOREIGN_CURRENCY: Currency = "USD"
MAX_EXTRACTED_CATEGORY_CHARS = 40
SAVINGS_CATEGORY = "Ahorro"

_NOISE_WHOLE = re.compile(r"^(total|diferencia|saldo|resumen)$")
_NOISE_WORD = re.compile(r"(^|\s)(total|diferencia|saldo)\b")
_INCOME_WORDS = re.compile(r"\b(sueldo|salario|ingreso|extra|venta|cobro|deposito)\b")
_SAVINGS_WORDS = re.compile(r"\b(ahorro|fondo)\b")

_KIND_TO_TYPE: Dict[str, TxnType] = {
    "income": "income",
    "expense": "expense",
    "debt": "expense",
    "saving": "expense",
}


class RawExtraction(BaseModel):
    """
    Untrusted extraction payload, kept deliberately loose. Only the functions
    in this module read it.
    """
    model_config = ConfigDict(extra="allow")

    entries: Any = None
    items: Any = None
    period_label: Any = None
    raw_text: Any = None

    def raw_entries(self) -> List[Dict[str, Any]]:
        source = self.entries if isinstance(self.entries, list) else self.items
        if not isinstance(source, list):
            return []
        return [entry for entry in source if isinstance(entry, dict)]

    def context_text(self) -> str:
        return f"{self.period_label or ''}\n{self.raw_text or ''}"


@dataclass(frozen=True)
class ExtractionCandidate:
    date: str
    type: TxnType
    category: str
    description: str
    amount: float
    currency: Currency
    original_amount: float

    @property
    def is_foreign(self) -> bool:
        return self.currency == FOREIGN_CURRENCY

    def dedupe_key(self) -> Tuple[str, str, str, str, str, str]:
        return (
            self.type,
            self.category,
            self.description,
            f"{self.original_amount:.2f}",
            self.date,
            self.currency,
        )

    def converted(self, amount: float, note: str) -> "ExtractionCandidate":
        return replace(self, amount=amount, description=f"{self.description}{note}")

    def as_row(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "type": self.type,
            "category": self.category,
            "description": self.description,
            "amount": self.amount,
        }


def _label(entry: Dict[str, Any]) -> str:
    for key in ("label", "description"):
        value = entry.get(key)
        if isinstance(value, str):
            return value.strip()
    return ""


def is_noise_label(label: str) -> bool:
    folded = fold(label)
    return bool(_NOISE_WHOLE.search(folded) or _NOISE_WORD.search(folded))


def classify_currency(entry: Dict[str, Any]) -> Currency:
    raw = entry.get("currency")
    if isinstance(raw, str) and "USD" in raw.upper():
        return FOREIGN_CURRENCY
    return HOME_CURRENCY


def classify_direction(kind: Any, signed_amount: float, folded_label: str) -> TxnType:
    if isinstance(kind, str):
        mapped = _KIND_TO_TYPE.get(fold(kind).strip())
        if mapped:
            return mapped
    if signed_amount < 0:
        return "expense"
    if _INCOME_WORDS.search(folded_label):
        return "income"
    return "expense"


def resolve_category(entry: Dict[str, Any], txn_type: TxnType, label: str) -> str:
    explicit = entry.get("category")
    if isinstance(explicit, str) and explicit.strip():
        return explicit.strip()[:MAX_EXTRACTED_CATEGORY_CHARS]
    if _SAVINGS_WORDS.search(fold(label)):
        return SAVINGS_CATEGORY
    return categorize(txn_type, label)


def _entry_date(entry: Dict[str, Any], fallback: str) -> str:
    value = entry.get("date")
    return value if is_iso_date(value) else fallback


def normalize_entry(entry: Dict[str, Any], fallback_date: str) -> Optional[ExtractionCandidate]:
    label = _label(entry)
    if not label or is_noise_label(label):
        return None

    signed = parse_signed_amount(entry.get("amount"))
    if signed is None:
        return None
    magnitude = round(abs(signed), 2)
    if magnitude <= 0:
        return None

    txn_type = classify_direction(entry.get("kind"), signed, fold(label))
    return ExtractionCandidate(
        date=_entry_date(entry, fallback_date),
        type=txn_type,
        category=resolve_category(entry, txn_type, label),
        description=label,
        amount=magnitude,
        currency=classify_currency(entry),
        original_amount=magnitude,
    )


def _dedupe(candidates: Iterable[ExtractionCandidate], max_rows: int) -> List[ExtractionCandidate]:
    seen: Set[Tuple[str, ...]] = set()
    out: List[ExtractionCandidate] = []
    for candidate in candidates:
        key = candidate.dedupe_key()
        if key in seen:
            continue
        seen.add(key)
        out.append(candidate)
        if len(out) >= max_rows:
            break
    return out


def candidates_from_extraction(
    extraction: RawExtraction,
    max_rows: int,
    *,
    today: Optional[date] = None,
) -> List[ExtractionCandidate]:
    fallback_date = date_from_text(extraction.context_text(), today=today)
    normalized = (
        normalize_entry(entry, fallback_date)
        for entry in extraction.raw_entries()
    )
    return _dedupe((c for c in normalized if c is not None), max_rows)
