"""
Tests for settings, logging helpers and database URL handling.
"""

from decimal import Decimal
from unittest.mock import Mock

import pytest
from pydantic import ValidationError

from motorshop.core.config import Settings, get_settings
from motorshop.core.logging import (
    actor_id_ctx,
    add_actor_context,
    bind_actor,
    log_performance,
    operation_ctx,
)
from motorshop.database.connection import _convert_database_url_to_async

# ============================================================================
# Settings Tests
# ============================================================================


class TestSettings:
    """Environment-driven configuration."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("MOTORSHOP_ENVIRONMENT", raising=False)

        settings = Settings(_env_file=None)

        assert settings.environment == "development"
        assert settings.is_development
        assert settings.redis_url == "redis://localhost:6379/0"
        assert settings.attachment_correlation_window_seconds == 60
        assert settings.default_tax_percentage == Decimal("16.00")

    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MOTORSHOP_REDIS_URL", "redis://cache:6379/3")
        monkeypatch.setenv("MOTORSHOP_ATTACHMENT_CORRELATION_WINDOW_SECONDS", "120")

        settings = Settings(_env_file=None)

        assert settings.redis_url == "redis://cache:6379/3"
        assert settings.attachment_correlation_window_seconds == 120

    def test_test_environment_from_fixture(self, test_settings: Settings) -> None:
        assert test_settings.is_test
        assert not test_settings.is_production

    @pytest.mark.parametrize(
        "url",
        [
            "postgresql://user:pass@db:5432/motorshop",
            "postgresql+asyncpg://user:pass@db:5432/motorshop",
            "sqlite+aiosqlite:///./motorshop.db",
        ],
    )
    def test_accepts_supported_database_urls(self, url: str) -> None:
        assert Settings(_env_file=None, database_url=url).database_url == url

    def test_rejects_sync_database_url(self) -> None:
        with pytest.raises(ValidationError, match="Database URL"):
            Settings(_env_file=None, database_url="mysql://db/motorshop")

    def test_rejects_non_redis_broker(self) -> None:
        with pytest.raises(ValidationError, match="Redis URL"):
            Settings(_env_file=None, celery_broker_url="amqp://guest@rabbit//")

    def test_rejects_negative_window(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, attachment_correlation_window_seconds=-1)

    def test_cached(self) -> None:
        assert get_settings() is get_settings()

    def test_plain_postgres_url_converted(self) -> None:
        assert (
            _convert_database_url_to_async("postgresql://db/motorshop")
            == "postgresql+asyncpg://db/motorshop"
        )
        assert (
            _convert_database_url_to_async("sqlite+aiosqlite:///x.db")
            == "sqlite+aiosqlite:///x.db"
        )


# ============================================================================
# Logging Helper Tests
# ============================================================================


class TestLoggingContext:
    """Actor binding and performance logging."""

    def test_bind_actor_sets_and_resets(self) -> None:
        with bind_actor(7, "submit_budget"):
            event = add_actor_context(Mock(), "info", {"event": "x"})
            assert event["actor_id"] == 7
            assert event["operation"] == "submit_budget"

        assert actor_id_ctx.get() is None
        assert operation_ctx.get() is None

    def test_system_actor_not_added(self) -> None:
        with bind_actor(None, "change_status"):
            event = add_actor_context(Mock(), "info", {"event": "x"})

        assert "actor_id" not in event
        assert event["operation"] == "change_status"

    def test_performance_logged_on_success(self) -> None:
        logger = Mock()

        with log_performance(logger, "deliver_order", order_id=3):
            pass

        logger.info.assert_called_once()
        assert logger.info.call_args.kwargs["operation"] == "deliver_order"
        assert logger.info.call_args.kwargs["order_id"] == 3

    def test_performance_logged_on_failure(self) -> None:
        logger = Mock()

        with pytest.raises(RuntimeError):
            with log_performance(logger, "deliver_order"):
                raise RuntimeError("boom")

        assert logger.error.call_args.kwargs["error_type"] == "RuntimeError"
