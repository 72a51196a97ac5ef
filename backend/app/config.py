from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


DEFAULT_CARD_RATE_URL = "https://dolarapi.com/v1/dolares/tarjeta"
DEFAULT_OFFICIAL_RATE_URL = "https://dolarapi.com/v1/dolares/oficial"

PREVIEW_DEFAULT_ROWS = 120
PREVIEW_MAX_ROWS = 250
IMPORT_MAX_ROWS = 2000
IMPORT_SOURCE_MAX_CHARS = 40
SUMMARY_TRANSACTION_WINDOW = 300


@dataclass(frozen=True)
class FxSettings:
    """
    Everything the currency converter needs, resolved once.

    The three tax percentages are independent knobs; the converter only ever
    uses their sum.
    """
    official_rate: float = 1250.0
    tax_pais_percent: float = 30.0
    tax_ganancias_percent: float = 30.0
    tax_card_extra_percent: float = 0.0
    card_rate_url: str = DEFAULT_CARD_RATE_URL
    official_rate_url: str = DEFAULT_OFFICIAL_RATE_URL
    timeout_seconds: float = 3.5

    @property
    def total_tax_percent(self) -> float:
        return self.tax_pais_percent + self.tax_ganancias_percent + self.tax_card_extra_percent


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("config_invalid_number name=%s value=%r default=%s", name, raw, default)
        return default


def _env_str(env: Mapping[str, str], name: str, default: str) -> str:
    raw = env.get(name)
    return raw.strip() if raw and raw.strip() else default


def fx_settings_from_env(environ: Optional[Mapping[str, str]] = None) -> FxSettings:
    env = os.environ if environ is None else environ
    return FxSettings(
        official_rate=_env_float(env, "ARG_USD_OFFICIAL_RATE", 1250.0),
        tax_pais_percent=_env_float(env, "ARG_TAX_PAIS_PERCENT", 30.0),
        tax_ganancias_percent=_env_float(env, "ARG_TAX_GANANCIAS_PERCENT", 30.0),
        tax_card_extra_percent=_env_float(env, "ARG_TAX_CARD_EXTRA_PERCENT", 0.0),
        card_rate_url=_env_str(env, "FX_CARD_RATE_URL", DEFAULT_CARD_RATE_URL),
        official_rate_url=_env_str(env, "FX_OFFICIAL_RATE_URL", DEFAULT_OFFICIAL_RATE_URL),
        timeout_seconds=_env_float(env, "FX_TIMEOUT_SECONDS", 3.5),
    )


def cors_origins() -> list[str]:
    raw = os.getenv("CORS_ALLOW_ORIGINS")
    if raw is None:
        origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
    else:
        origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
    if not origins:
        raise RuntimeError("CORS_ALLOW_ORIGINS must not be empty.")
    return origins
