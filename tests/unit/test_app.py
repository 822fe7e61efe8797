"""
Unit tests for application wiring: settings, lifespan, error mapping and
the delivery strategy chain built from configuration.
"""

from collections.abc import Generator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import ValidationError

from src.adapters.delivery import ConsoleDeliveryStrategy, SmtpDeliveryStrategy
from src.api.dependencies import build_delivery_strategies
from src.api.errors import register_exception_handlers
from src.config.settings import Settings, get_settings
from src.domain.exceptions import Conflict, InvalidCode, NotFound


@pytest.fixture
def memory_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("DATABASE_URL", "memory://")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings(_env_file=None)

        assert settings.verification_ttl_seconds == 300
        assert settings.reset_ttl_seconds == 3600
        assert settings.max_attempts == 5
        assert settings.code_length == 6
        assert settings.session_ttl_hours == 24
        assert settings.smtp_ports == [587, 465, 2525]

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ENVIRONMENT", "Production")
        monkeypatch.setenv("DATABASE_URL", "memory://")
        monkeypatch.setenv("SMTP_PORTS", "[2525]")

        settings = Settings(_env_file=None)

        assert settings.is_production is True
        assert settings.uses_memory_store is True
        assert settings.smtp_ports == [2525]

    @pytest.mark.parametrize("code_length", [3, 11])
    def test_code_length_bounds(self, code_length: int) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, code_length=code_length)


class TestDeliveryChain:
    def test_console_only_by_default(self) -> None:
        strategies = build_delivery_strategies(Settings(_env_file=None))

        assert len(strategies) == 1
        assert isinstance(strategies[0], ConsoleDeliveryStrategy)

    def test_full_chain_order(self) -> None:
        settings = Settings(
            _env_file=None,
            smtp_host="smtp.primary.test",
            fallback_smtp_host="smtp.fallback.test",
        )

        strategies = build_delivery_strategies(settings)

        assert [s.name for s in strategies] == [
            "smtp:smtp.primary.test:587",
            "smtp:smtp.primary.test:465",
            "smtp:smtp.primary.test:2525",
            "smtp:smtp.fallback.test:587",
            "console",
        ]
        assert isinstance(strategies[1], SmtpDeliveryStrategy)
        assert strategies[1].use_ssl is True
        assert strategies[0].use_ssl is False

    def test_console_off_by_default_in_production(self) -> None:
        settings = Settings(_env_file=None, environment="production", smtp_host="smtp.primary.test")

        strategies = build_delivery_strategies(settings)

        assert settings.uses_console_delivery is False
        assert all(isinstance(s, SmtpDeliveryStrategy) for s in strategies)

    def test_console_explicitly_enabled_in_production(self) -> None:
        settings = Settings(_env_file=None, environment="production", console_delivery_enabled=True)

        assert isinstance(build_delivery_strategies(settings)[-1], ConsoleDeliveryStrategy)

    def test_console_can_be_disabled(self) -> None:
        settings = Settings(_env_file=None, smtp_host="smtp.primary.test", console_delivery_enabled=False)

        strategies = build_delivery_strategies(settings)

        assert all(isinstance(s, SmtpDeliveryStrategy) for s in strategies)


class TestLifespan:
    def test_memory_store_health(self, memory_env: None) -> None:
        from src.api.main import app

        with TestClient(app) as client:
            assert app.state.memory_store is not None
            response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_console_delivery_in_production_warns(
        self, memory_env: None, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("CONSOLE_DELIVERY_ENABLED", "true")
        get_settings.cache_clear()
        from src.api.main import app

        with caplog.at_level("WARNING", logger="src.api.main"), TestClient(app):
            pass

        assert "Console delivery is enabled in production" in caplog.text

    def test_openapi_lists_routes(self, memory_env: None) -> None:
        from src.api.main import app

        paths = TestClient(app).get("/openapi.json").json()["paths"]

        for path in (
            "/v1/register/step1",
            "/v1/login",
            "/v1/verification/send-email",
            "/v1/request-password-reset",
            "/v1/gateway/set-code",
        ):
            assert path in paths


class TestErrorHandlers:
    @pytest.fixture
    def client(self) -> TestClient:
        app = FastAPI()
        register_exception_handlers(app)

        @app.get("/conflict")
        def conflict() -> None:
            raise Conflict("Username already taken")

        @app.get("/missing")
        def missing() -> None:
            raise NotFound()

        @app.get("/bad-code")
        def bad_code() -> None:
            raise InvalidCode(errors=[{"field": "code", "message": "must be 6 digits"}])

        return TestClient(app)

    def test_status_and_detail(self, client: TestClient) -> None:
        response = client.get("/conflict")

        assert response.status_code == 409
        assert response.json() == {"detail": "Username already taken"}

    def test_default_detail(self, client: TestClient) -> None:
        assert client.get("/missing").json() == {"detail": "Not found"}

    def test_field_errors_included(self, client: TestClient) -> None:
        response = client.get("/bad-code")

        assert response.status_code == 400
        assert response.json()["errors"] == [{"field": "code", "message": "must be 6 digits"}]
