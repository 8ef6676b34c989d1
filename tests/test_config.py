# tests/test_config.py
from __future__ import annotations

import pytest

from enrichment import config as config_mod
from enrichment.config import (
    DEFAULT_NICHE_TAXONOMY,
    AppConfig,
    BatchConfig,
    load_niche_taxonomy,
    load_settings,
)


def test_load_settings_builds_every_section():
    cfg = load_settings()
    assert isinstance(cfg, AppConfig)
    assert cfg.fetch.max_retries >= 0
    assert cfg.throttle.min_interval_sec >= 0
    assert cfg.thresholds.premium_min_da >= cfg.thresholds.standard_min_da
    assert cfg.thresholds.premium_max_spam <= cfg.thresholds.standard_max_spam
    assert isinstance(cfg.extraction.generated_local_parts, tuple)


def test_sections_are_frozen():
    cfg = load_settings()
    with pytest.raises(AttributeError):
        cfg.throttle.min_interval_sec = 0.0  # type: ignore[misc]


def test_env_helpers(monkeypatch):
    monkeypatch.setenv("X_INT", " 7 ")
    monkeypatch.setenv("X_FLOAT", "2.5")
    monkeypatch.setenv("X_LIST", "info, contact,,hello ")
    monkeypatch.setenv("X_BOOL", "off")
    assert config_mod._getenv_int("X_INT", 1) == 7
    assert config_mod._getenv_float("X_FLOAT", 1.0) == 2.5
    assert config_mod._getenv_list_str("X_LIST", "") == ["info", "contact", "hello"]
    assert config_mod._getenv_bool("X_BOOL", True) is False
    assert config_mod._getenv_bool("X_UNSET_BOOL", True) is True
    assert config_mod._getenv_int("X_UNSET_INT", 3) == 3


def test_invalid_int_names_the_variable(monkeypatch):
    monkeypatch.setenv("BATCH_CONCURRENCY", "lots")
    with pytest.raises(ValueError, match="BATCH_CONCURRENCY"):
        config_mod._getenv_int("BATCH_CONCURRENCY", 3)


def test_database_url_and_path(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///var/data/opps.db")
    assert BatchConfig().db_path == "var/data/opps.db"

    monkeypatch.setenv("DATABASE_URL", "postgresql://db/opps")
    with pytest.raises(ValueError, match="sqlite"):
        BatchConfig()

    monkeypatch.delenv("DATABASE_URL")
    monkeypatch.setenv("DATABASE_PATH", "/tmp/x.db")
    assert BatchConfig().db_path == "/tmp/x.db"


def test_niche_taxonomy_from_yaml(tmp_path):
    path = tmp_path / "niches.yaml"
    path.write_text(
        "niches:\n  gardening: [Compost, ' Seeds ', '']\n  empty: []\n  bad: nope\n",
        encoding="utf-8",
    )
    assert load_niche_taxonomy(path) == {"gardening": ["compost", "seeds"]}


def test_niche_taxonomy_falls_back(tmp_path):
    assert load_niche_taxonomy(tmp_path / "missing.yaml") == DEFAULT_NICHE_TAXONOMY
    malformed = tmp_path / "list.yaml"
    malformed.write_text("- just\n- a list\n", encoding="utf-8")
    assert load_niche_taxonomy(malformed) == DEFAULT_NICHE_TAXONOMY


def test_shipped_taxonomy_loads():
    taxonomy = load_niche_taxonomy()
    assert taxonomy
    assert all(kws for kws in taxonomy.values())
