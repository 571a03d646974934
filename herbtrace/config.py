"""
Engine settings loaded from ``herbtrace.toml``.

Example:

    ledger_dir = ".herbtrace"
    trace_base_url = "https://traceability.ayurveda.com"

    [harvest]
    max_farmer_share = 0.10
    max_harvest_age_days = 365

    [quality]
    dna_match_threshold = 95

    [quota]
    total = 100000

    [quota.herbs]
    Ashwagandha = 20000
    Other = 22000
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

CONFIG_FILENAME = "herbtrace.toml"

DEFAULT_HERB_QUOTAS: dict[str, float] = {
    "Ashwagandha": 20000,
    "Turmeric": 25000,
    "Tulsi": 15000,
    "Neem": 10000,
    "Brahmi": 8000,
    "Other": 22000,
}


@dataclass(frozen=True)
class QuotaDefaults:
    """Allocation used when a year's quota tracker is first created."""

    total: float = 100000
    herbs: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_HERB_QUOTAS))


@dataclass(frozen=True)
class Settings:
    ledger_dir: Path = Path(".herbtrace")
    trace_base_url: str = "https://traceability.ayurveda.com"
    max_farmer_share: float = 0.10
    max_harvest_age_days: int = 365
    dna_match_threshold: float = 95.0
    quota: QuotaDefaults = field(default_factory=QuotaDefaults)


def _coerce_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _positive_number(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number")
    if value <= 0:
        raise ValueError(f"{name} must be positive")
    return float(value)


def load_settings(path: Path | None = None) -> Settings:
    """
    Load settings from TOML.

    A missing file yields the defaults. Unknown keys are ignored.
    """
    import tomllib

    if path is None or not path.exists():
        return Settings()

    data = tomllib.loads(path.read_text(encoding="utf-8"))
    defaults = Settings()

    ledger_dir = data.get("ledger_dir")
    if ledger_dir is not None:
        ledger_dir_str = str(ledger_dir).strip()
        if not ledger_dir_str:
            raise ValueError("ledger_dir must be non-empty")
        resolved = Path(ledger_dir_str)
        if not resolved.is_absolute():
            resolved = path.parent / resolved
    else:
        resolved = defaults.ledger_dir

    base_url = str(data.get("trace_base_url", defaults.trace_base_url)).strip().rstrip("/")
    if not base_url:
        raise ValueError("trace_base_url must be non-empty")

    harvest = _coerce_dict(data.get("harvest"))
    share = _positive_number(harvest.get("max_farmer_share", defaults.max_farmer_share), "harvest.max_farmer_share")
    if share > 1:
        raise ValueError("harvest.max_farmer_share must be at most 1")
    max_age = int(_positive_number(harvest.get("max_harvest_age_days", defaults.max_harvest_age_days), "harvest.max_harvest_age_days"))

    quality = _coerce_dict(data.get("quality"))
    threshold = _positive_number(quality.get("dna_match_threshold", defaults.dna_match_threshold), "quality.dna_match_threshold")
    if threshold > 100:
        raise ValueError("quality.dna_match_threshold must be at most 100")

    quota_raw = _coerce_dict(data.get("quota"))
    total = _positive_number(quota_raw.get("total", defaults.quota.total), "quota.total")
    herbs_raw = quota_raw.get("herbs")
    if herbs_raw is None:
        herbs = dict(DEFAULT_HERB_QUOTAS)
    else:
        herbs = {str(k): _positive_number(v, f"quota.herbs.{k}") for k, v in _coerce_dict(herbs_raw).items()}
        herbs.setdefault("Other", DEFAULT_HERB_QUOTAS["Other"])

    return Settings(
        ledger_dir=resolved,
        trace_base_url=base_url,
        max_farmer_share=share,
        max_harvest_age_days=max_age,
        dna_match_threshold=threshold,
        quota=QuotaDefaults(total=total, herbs=herbs),
    )
