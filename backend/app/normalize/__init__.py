"""Normalization primitives shared by preview, import and reconciliation."""

from backend.app.normalize.amounts import parse_amount, parse_signed_amount  # noqa: F401
from backend.app.normalize.categorize import categorize  # noqa: F401
from backend.app.normalize.dates import (  # noqa: F401
    date_from_text,
    days_until,
    parse_date,
    parse_import_date,
    utc_today,
)
from backend.app.normalize.extraction import (  # noqa: F401
    ExtractionCandidate,
    RawExtraction,
    candidates_from_extraction,
)
