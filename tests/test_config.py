"""Tests for herbtrace.toml loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from herbtrace.config import DEFAULT_HERB_QUOTAS, Settings, load_settings
from herbtrace.harvest import HarvestValidator


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "herbtrace.toml"
    path.write_text(text, encoding="utf-8")
    return path


def test_missing_file_gives_defaults(tmp_path: Path) -> None:
    assert load_settings(None) == Settings()
    assert load_settings(tmp_path / "absent.toml") == Settings()

    settings = Settings()
    assert settings.max_farmer_share == 0.10
    assert settings.dna_match_threshold == 95.0
    assert settings.quota.total == 100000
    assert settings.quota.herbs == DEFAULT_HERB_QUOTAS


def test_values_are_read(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        """
ledger_dir = "data/ledger"
trace_base_url = "https://trace.example.org/"

[harvest]
max_farmer_share = 0.25
max_harvest_age_days = 30

[quality]
dna_match_threshold = 90

[quota]
total = 5000

[quota.herbs]
Tulsi = 1000
""",
    )
    settings = load_settings(path)

    assert settings.ledger_dir == tmp_path / "data" / "ledger"
    assert settings.trace_base_url == "https://trace.example.org"
    assert settings.max_farmer_share == 0.25
    assert settings.max_harvest_age_days == 30
    assert settings.dna_match_threshold == 90
    assert settings.quota.total == 5000
    assert settings.quota.herbs == {"Tulsi": 1000, "Other": 22000}


def test_absolute_ledger_dir_is_kept(tmp_path: Path) -> None:
    target = tmp_path / "elsewhere"
    settings = load_settings(_write(tmp_path, f'ledger_dir = "{target.as_posix()}"\n'))
    assert settings.ledger_dir == target


@pytest.mark.parametrize(
    "text, fragment",
    [
        ('ledger_dir = "  "\n', "ledger_dir"),
        ('trace_base_url = ""\n', "trace_base_url"),
        ("[harvest]\nmax_farmer_share = 1.5\n", "max_farmer_share"),
        ("[harvest]\nmax_farmer_share = 0\n", "max_farmer_share"),
        ('[harvest]\nmax_harvest_age_days = "soon"\n', "max_harvest_age_days"),
        ("[quality]\ndna_match_threshold = 101\n", "dna_match_threshold"),
        ("[quota]\ntotal = -1\n", "quota.total"),
        ("[quota.herbs]\nNeem = true\n", "quota.herbs.Neem"),
    ],
)
def test_invalid_values(tmp_path: Path, text: str, fragment: str) -> None:
    with pytest.raises(ValueError, match=fragment):
        load_settings(_write(tmp_path, text))


def test_quota_defaults_seed_new_years(tmp_path: Path, begin, farmer) -> None:
    path = _write(tmp_path, "[quota]\ntotal = 400\n\n[quota.herbs]\nAshwagandha = 300\n")
    harvest = HarvestValidator(load_settings(path))

    with begin(farmer) as tx:
        ok = harvest.validate_quota(tx, "Ashwagandha", 30, "FARM-01", "2024-03-15T08:00:00Z")
        over = harvest.validate_quota(tx, "Ashwagandha", 50, "FARM-01", "2024-03-15T08:00:00Z")
    assert ok["quotaStatus"]["total"] == 300
    # farmer share is 10% of the configured total
    assert ok["farmerQuotaStatus"]["maxAllowed"] == 40
    assert over["reason"] == "farmer-share"
    assert over["shortfall"] == 10
