"""Tests for settings and the static service-line mapping file."""

import pytest

from ledger_analytics.config.service_lines import (
    StaticServiceLineSource,
    load_service_line_mappings,
)

MAPPING_YAML = """
master_service_lines:
  AUD:
    name: Audit & Assurance
    service_lines: [AUD01, AUD02]
  TAX:
    name: Tax
    service_lines:
      - TAX01
"""


def test_settings_loads_from_env():
    """Test that settings loads from environment variables."""
    from ledger_analytics.config.settings import get_settings

    get_settings.cache_clear()
    settings = get_settings()

    assert settings.ledger_api_token.get_secret_value() == "test-token"


def test_settings_has_defaults():
    """Test that settings has sensible defaults."""
    from ledger_analytics.config.settings import get_settings

    get_settings.cache_clear()
    settings = get_settings()

    assert settings.ledger_api_url == "http://localhost:8000"
    assert settings.ledger_max_retries == 3
    assert settings.cache_ttl_closed_seconds == 86400
    assert settings.cache_ttl_current_seconds == 1800
    assert settings.resolution_high_points == 365
    assert settings.resolution_standard_points == 120
    assert settings.resolution_low_points == 60
    assert settings.trailing_span == 12
    assert settings.fiscal_year_start_month == 9
    assert settings.partner_categories == ["CARL", "Local", "DIR"]


def test_settings_override_from_env(monkeypatch):
    """Test that environment variables override defaults."""
    from ledger_analytics.config.settings import get_settings

    monkeypatch.setenv("RESOLUTION_LOW_POINTS", "30")
    monkeypatch.setenv("FISCAL_YEAR_START_MONTH", "7")
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.resolution_low_points == 30
        assert settings.fiscal_year_start_month == 7
    finally:
        get_settings.cache_clear()


def test_settings_are_cached():
    """Test that get_settings returns cached instance."""
    from ledger_analytics.config.settings import get_settings

    get_settings.cache_clear()

    assert get_settings() is get_settings()


class TestServiceLineMappings:
    """Tests for the YAML mapping loader."""

    def test_load(self, tmp_path):
        path = tmp_path / "service_lines.yaml"
        path.write_text(MAPPING_YAML, encoding="utf-8")

        mappings = load_service_line_mappings(path)

        assert set(mappings) == {"AUD01", "AUD02", "TAX01"}
        assert mappings["AUD02"].master_code == "AUD"
        assert mappings["TAX01"].master_name == "Tax"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")

        assert load_service_line_mappings(path) == {}

    def test_service_line_in_two_masters(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text(
            "master_service_lines:\n"
            "  AUD: {service_lines: [X1]}\n"
            "  TAX: {service_lines: [X1]}\n",
            encoding="utf-8",
        )

        with pytest.raises(ValueError, match="X1"):
            load_service_line_mappings(path)

    def test_bad_structure(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("master_service_lines: [AUD, TAX]\n", encoding="utf-8")

        with pytest.raises(ValueError):
            load_service_line_mappings(path)

    @pytest.mark.asyncio
    async def test_static_source_reads_once(self, tmp_path):
        path = tmp_path / "service_lines.yaml"
        path.write_text(MAPPING_YAML, encoding="utf-8")
        source = StaticServiceLineSource(path)

        first = await source.fetch_service_line_mappings()
        path.write_text("master_service_lines: {}\n", encoding="utf-8")
        second = await source.fetch_service_line_mappings()

        assert first == second
        assert first is not second

    def test_source_from_settings(self, tmp_path, monkeypatch):
        from ledger_analytics.config.settings import get_settings

        path = tmp_path / "service_lines.yaml"
        path.write_text(MAPPING_YAML, encoding="utf-8")
        monkeypatch.setenv("SERVICE_LINE_MAP_PATH", str(path))
        get_settings.cache_clear()
        try:
            source = StaticServiceLineSource.from_settings()
            assert source._path == path
        finally:
            get_settings.cache_clear()

    def test_source_from_settings_requires_path(self, monkeypatch):
        from ledger_analytics.config.settings import get_settings

        monkeypatch.delenv("SERVICE_LINE_MAP_PATH", raising=False)
        get_settings.cache_clear()

        with pytest.raises(ValueError, match="SERVICE_LINE_MAP_PATH"):
            StaticServiceLineSource.from_settings()


@pytest.mark.parametrize("log_format", ["json", "console"])
def test_configure_logging(log_format):
    """Test that both renderers configure without error."""
    import structlog

    from ledger_analytics.config import configure_logging, get_logger

    configure_logging(level="DEBUG", format=log_format)

    assert structlog.is_configured()
    get_logger(__name__).info("logging_configured", format=log_format)


def test_configure_logging_quiets_http_client():
    """Test that per-request httpx logs only show at DEBUG."""
    import logging

    from ledger_analytics.config import configure_logging

    configure_logging(level="INFO", format="json")
    assert logging.getLogger("httpx").level == logging.WARNING

    configure_logging(level="DEBUG", format="json")
    assert logging.getLogger("httpx").level == logging.DEBUG


def test_events_carry_service_name():
    from ledger_analytics.config.logging import SERVICE_NAME, add_service_name

    assert add_service_name(None, "info", {"event": "cache_hit"}) == {
        "event": "cache_hit",
        "service": SERVICE_NAME,
    }
    assert add_service_name(None, "info", {"service": "worker"})["service"] == "worker"


def test_get_logger_binds_component():
    """Test that the component comes from the module name unless given."""
    from structlog.testing import capture_logs

    from ledger_analytics.config import get_logger

    with capture_logs() as logs:
        get_logger("ledger_analytics.clients.ledger_api").info("scope_resolved")
        get_logger("ledger_analytics.orchestrator", component="analytics_orchestrator").info(
            "cache_hit"
        )

    assert logs[0]["component"] == "ledger_api"
    assert logs[1]["component"] == "analytics_orchestrator"
