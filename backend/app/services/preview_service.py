from __future__ import annotations

import logging
import math
from datetime import date
from typing import Any, Dict, List, Optional

from backend.app.config import PREVIEW_DEFAULT_ROWS, PREVIEW_MAX_ROWS
from backend.app.normalize.extraction import (
    ExtractionCandidate,
    RawExtraction,
    candidates_from_extraction,
)
from backend.app.services.fx_service import CurrencyConverter, RateQuote

logger = logging.getLogger(__name__)

NO_ROWS_WARNING = "No se detectaron movimientos en el adjunto."


def clamp_max_rows(value: Any) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return PREVIEW_DEFAULT_ROWS
    if not math.isfinite(number):
        return PREVIEW_DEFAULT_ROWS
    return int(min(max(number, 1), PREVIEW_MAX_ROWS))


def conversion_note(original_amount: float, quote: Optional[RateQuote]) -> str:
    if quote is None or quote.rate <= 0:
        return f" | USD {original_amount:.2f} (sin conversion)"
    taxes = ""
    if quote.taxes_applied_percent:
        taxes = f", imp. {quote.taxes_applied_percent:.1f}%"
    return f" | USD {original_amount:.2f} convertido a ARS (TC {quote.rate:.2f}{taxes})"


def _convert_rows(
    candidates: List[ExtractionCandidate],
    converter: CurrencyConverter,
) -> tuple[List[ExtractionCandidate], Optional[RateQuote]]:
    if not any(c.is_foreign for c in candidates):
        return candidates, None

    # One rate for the whole batch.
    quote = converter.resolve_foreign_rate()
    converted: List[ExtractionCandidate] = []
    for candidate in candidates:
        if not candidate.is_foreign:
            converted.append(candidate)
            continue
        amount = converter.convert(candidate.amount, quote.rate) if quote.rate > 0 else candidate.amount
        converted.append(candidate.converted(amount, conversion_note(candidate.original_amount, quote)))
    return converted, quote


def build_preview(
    extraction: RawExtraction,
    converter: CurrencyConverter,
    *,
    max_rows: Any = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    limit = clamp_max_rows(PREVIEW_DEFAULT_ROWS if max_rows is None else max_rows)
    candidates = candidates_from_extraction(extraction, limit, today=today)
    if not candidates:
        return {"rows": [], "warnings": [NO_ROWS_WARNING]}

    rows, quote = _convert_rows(candidates, converter)

    logger.info(
        "transactions_preview_generated count=%s usd_rate_used=%s source=%s",
        len(rows),
        quote.rate if quote else 0,
        quote.source if quote else None,
    )
    return {
        "rows": [row.as_row() for row in rows],
        "meta": {
            "count": len(rows),
            "usd_rate_used": quote.rate if quote else 0,
            "usd_source": quote.source if quote else None,
            "taxes_applied_percent": quote.taxes_applied_percent if quote else None,
        },
    }
