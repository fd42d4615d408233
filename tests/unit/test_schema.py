"""
Unit tests for Pydantic models and settings loading.

Tests cover:
- Capsule validation and defaults
- camelCase aliases on aggregate models
- Settings validation
- YAML loading with environment overrides
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from cosmo.errors import ConfigError
from cosmo.schema import (
    Capsule,
    CapsuleSearchResult,
    CapsuleStats,
    NewCapsule,
    Settings,
    load_settings,
    load_settings_from_string,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep COSMO_* variables from the outer environment out of the tests."""
    for name in ("COSMO_DB_PATH", "COSMO_LOG_LEVEL", "COSMO_LOG_FILE", "COSMO_HTTP_HOST", "COSMO_HTTP_PORT"):
        monkeypatch.delenv(name, raising=False)


# =============================================================================
# Capsule Models
# =============================================================================


class TestCapsule:
    """Tests for Capsule and NewCapsule."""

    def test_minimal_capsule(self) -> None:
        capsule = Capsule(id="c1", content="hello", timestamp=1)
        assert capsule.tags == []
        assert capsule.created_at.tzinfo is not None

    def test_null_tags_become_empty(self) -> None:
        """Absent tags are represented as an empty list."""
        capsule = Capsule(id="c1", content="hello", tags=None, timestamp=1)
        assert capsule.tags == []

    def test_capsule_is_frozen(self) -> None:
        capsule = Capsule(id="c1", content="hello", timestamp=1)
        with pytest.raises(ValidationError):
            capsule.content = "changed"

    def test_empty_id_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Capsule(id="", content="hello", timestamp=1)

    def test_negative_timestamp_rejected(self) -> None:
        with pytest.raises(ValidationError):
            NewCapsule(content="hello", timestamp=-1)

    def test_new_capsule_requires_content(self) -> None:
        with pytest.raises(ValidationError):
            NewCapsule(content="", timestamp=0)

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Capsule(id="c1", content="hello", timestamp=1, pinned=True)


class TestAggregates:
    """Tests for search results and stats."""

    def test_search_result_aliases(self) -> None:
        """Search results dump totalCount in camelCase."""
        result = CapsuleSearchResult(capsules=[], total_count=3)
        assert result.model_dump(by_alias=True) == {"capsules": [], "totalCount": 3}

    def test_search_result_accepts_alias(self) -> None:
        result = CapsuleSearchResult.model_validate({"capsules": [], "totalCount": 2})
        assert result.total_count == 2

    def test_stats_aliases(self) -> None:
        stats = CapsuleStats(
            total_capsules=3,
            unique_tags=2,
            recent_capsules=1,
            this_month_capsules=2,
            top_tags=[("x", 2), ("y", 1)],
        )
        data = stats.model_dump(by_alias=True)
        assert data["totalCapsules"] == 3
        assert data["uniqueTags"] == 2
        assert data["recentCapsules"] == 1
        assert data["thisMonthCapsules"] == 2
        assert data["topTags"] == [("x", 2), ("y", 1)]


# =============================================================================
# Settings
# =============================================================================


class TestSettings:
    """Tests for Settings validation."""

    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.db_path == Path("cosmo.db")
        assert settings.server_name == "cosmo"
        assert settings.log_level == "INFO"
        assert settings.log_file is None
        assert settings.http_port == 8765
        assert settings.http_path == "/mcp"

    def test_log_level_normalized(self) -> None:
        assert Settings(log_level="debug").log_level == "DEBUG"

    def test_unknown_log_level_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(log_level="chatty")

    def test_http_path_must_be_absolute(self) -> None:
        with pytest.raises(ValidationError):
            Settings(http_path="mcp")

    def test_port_range(self) -> None:
        with pytest.raises(ValidationError):
            Settings(http_port=0)

    def test_unknown_key_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(db="cosmo.db")


class TestLoadSettings:
    """Tests for YAML settings loading."""

    def test_no_path_gives_defaults(self) -> None:
        assert load_settings() == Settings()

    def test_load_from_file(self, temp_dir: Path) -> None:
        path = temp_dir / "cosmo.yaml"
        path.write_text("db_path: notes.db\nlog_level: warning\nhttp_port: 9000\n")
        settings = load_settings(path)
        assert settings.db_path == Path("notes.db")
        assert settings.log_level == "WARNING"
        assert settings.http_port == 9000

    def test_empty_file_gives_defaults(self, temp_dir: Path) -> None:
        path = temp_dir / "cosmo.yaml"
        path.write_text("")
        assert load_settings(path) == Settings()

    def test_missing_file(self, temp_dir: Path) -> None:
        with pytest.raises(ConfigError, match="Cannot read settings"):
            load_settings(temp_dir / "missing.yaml")

    def test_invalid_yaml(self) -> None:
        with pytest.raises(ConfigError):
            load_settings_from_string("db_path: [unclosed")

    def test_non_mapping_rejected(self) -> None:
        with pytest.raises(ConfigError, match="must be a mapping"):
            load_settings_from_string("- a\n- b\n")

    def test_invalid_values_reported(self) -> None:
        """Validation problems surface as ConfigError with the details."""
        with pytest.raises(ConfigError) as exc_info:
            load_settings_from_string("http_port: not-a-port\n")
        assert exc_info.value.context["errors"]

    def test_env_overrides_file(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("COSMO_DB_PATH", "/tmp/env.db")
        monkeypatch.setenv("COSMO_HTTP_PORT", "9100")
        settings = load_settings_from_string("db_path: file.db\nhttp_port: 9000\n")
        assert settings.db_path == Path("/tmp/env.db")
        assert settings.http_port == 9100
