"""
Unit tests for API v1 routes.

Runs the real services over an in-memory store and captures delivered
codes with a stub strategy, so each test drives the HTTP surface end to end.
"""

from collections.abc import Generator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.adapters.delivery import CodeMessage, DeliveryError
from src.adapters.repository.memory import MemoryStore
from src.api.dependencies import get_delivery_strategies
from src.api.errors import register_exception_handlers
from src.api.v1 import router
from src.config.settings import get_settings
from src.domain.ports import Channel
from tests.conftest import TEST_JWT_SECRET

STEP1 = {
    "firstName": "Alice",
    "lastName": "Liddell",
    "email": "alice@example.com",
    "dob": "1990-05-17",
    "country": "UK",
    "nationality": "British",
    "isOver18": True,
    "acceptedTerms": True,
}


class CapturingStrategy:
    """Delivery strategy that keeps messages so tests can read the codes."""

    name = "capture"

    def __init__(self) -> None:
        self.messages: list[CodeMessage] = []
        self.fail = False

    def supports(self, channel: Channel) -> bool:
        return True

    def deliver(self, message: CodeMessage) -> None:
        if self.fail:
            raise DeliveryError("capture down")
        self.messages.append(message)

    @property
    def last_code(self) -> str:
        return self.messages[-1].code


@pytest.fixture
def outbox() -> CapturingStrategy:
    return CapturingStrategy()


@pytest.fixture
def app(monkeypatch: pytest.MonkeyPatch, outbox: CapturingStrategy) -> Generator[FastAPI, None, None]:
    """Create test FastAPI application over a fresh in-memory store."""
    monkeypatch.setenv("BCRYPT_COST", "4")
    monkeypatch.setenv("JWT_SECRET", TEST_JWT_SECRET)
    get_settings.cache_clear()

    test_app = FastAPI()
    register_exception_handlers(test_app)
    test_app.include_router(router, prefix="/v1")
    test_app.state.memory_store = MemoryStore()
    test_app.state.pool = None
    test_app.dependency_overrides[get_delivery_strategies] = lambda: (outbox,)

    yield test_app

    get_settings.cache_clear()


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


def register(
    client: TestClient,
    email: str = "alice@example.com",
    username: str = "alice",
    mobile_number: str = "+447700900123",
) -> str:
    """Complete all three steps and return the user id."""
    response = client.post("/v1/register/step1", json={**STEP1, "email": email})
    assert response.status_code == 201
    user_id = response.json()["userId"]

    response = client.post(
        "/v1/register/step2",
        json={
            "userId": user_id,
            "username": username,
            "password": "wonderland1",
            "securityQuestion": "Name of your first cat?",
            "securityAnswer": "Dinah",
        },
    )
    assert response.status_code == 200

    response = client.post(
        "/v1/register/step3",
        json={
            "userId": user_id,
            "street": "Rabbit Hole Lane",
            "houseNumber": "7",
            "city": "Oxford",
            "postalCode": "OX1 1AA",
            "mobileNumber": mobile_number,
            "currency": "GBP",
        },
    )
    assert response.status_code == 200
    return user_id


class TestRegistration:
    def test_step1_returns_201(self, client: TestClient) -> None:
        response = client.post("/v1/register/step1", json=STEP1)

        assert response.status_code == 201
        body = response.json()
        assert body["step"] == 1
        assert body["completed"] is False
        assert "userId" in body

    def test_step1_missing_field_is_400_with_errors(self, client: TestClient) -> None:
        payload = {k: v for k, v in STEP1.items() if k != "lastName"}

        response = client.post("/v1/register/step1", json=payload)

        assert response.status_code == 400
        body = response.json()
        assert body["detail"] == "Validation failed"
        assert any(error["field"] == "lastName" for error in body["errors"])

    def test_step1_invalid_email(self, client: TestClient) -> None:
        response = client.post("/v1/register/step1", json={**STEP1, "email": "not-an-email"})
        assert response.status_code == 400

    def test_step1_under_18(self, client: TestClient) -> None:
        response = client.post("/v1/register/step1", json={**STEP1, "isOver18": False})

        assert response.status_code == 400
        assert "18" in response.json()["detail"]

    def test_step1_duplicate_email_is_409(self, client: TestClient) -> None:
        client.post("/v1/register/step1", json=STEP1)

        response = client.post("/v1/register/step1", json={**STEP1, "email": "ALICE@example.com"})

        assert response.status_code == 409

    def test_full_registration(self, client: TestClient) -> None:
        user_id = register(client)

        response = client.get(f"/v1/verification/status/{user_id}")
        assert response.status_code == 200
        assert response.json()["emailVerified"] is False

    def test_step3_before_step2(self, client: TestClient) -> None:
        user_id = client.post("/v1/register/step1", json=STEP1).json()["userId"]

        response = client.post(
            "/v1/register/step3",
            json={
                "userId": user_id,
                "street": "s",
                "houseNumber": "1",
                "city": "c",
                "postalCode": "p",
                "mobileNumber": "+15550000000",
                "currency": "USD",
            },
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid user or registration step"

    def test_step3_unknown_currency(self, client: TestClient) -> None:
        user_id = client.post("/v1/register/step1", json=STEP1).json()["userId"]

        response = client.post(
            "/v1/register/step3",
            json={
                "userId": user_id,
                "street": "s",
                "houseNumber": "1",
                "city": "c",
                "postalCode": "p",
                "mobileNumber": "+15550000000",
                "currency": "DOGE",
            },
        )

        assert response.status_code == 400
        assert any(error["field"] == "currency" for error in response.json()["errors"])

    def test_check_username(self, client: TestClient) -> None:
        register(client)

        taken = client.post("/v1/check-username", json={"username": "alice"})
        free = client.post("/v1/check-username", json={"username": "bobby"})

        assert taken.json() == {"available": False}
        assert free.json() == {"available": True}


class TestLogin:
    def test_login_and_me(self, client: TestClient) -> None:
        user_id = register(client)

        response = client.post("/v1/login", json={"emailOrUsername": "alice", "password": "wonderland1"})

        assert response.status_code == 200
        body = response.json()
        assert body["user"]["id"] == user_id
        assert "passwordHash" not in body["user"]

        me = client.get("/v1/me", headers={"Authorization": f"Bearer {body['token']}"})
        assert me.status_code == 200
        assert me.json()["username"] == "alice"

    def test_bad_credentials_are_generic(self, client: TestClient) -> None:
        register(client)

        wrong_password = client.post("/v1/login", json={"emailOrUsername": "alice", "password": "nope-nope"})
        unknown_user = client.post("/v1/login", json={"emailOrUsername": "ghost", "password": "nope-nope"})

        assert wrong_password.status_code == unknown_user.status_code == 401
        assert wrong_password.json() == unknown_user.json() == {"detail": "Invalid credentials"}

    def test_login_records_ledger(self, client: TestClient, app: FastAPI) -> None:
        register(client)
        client.post("/v1/login", json={"emailOrUsername": "alice", "password": "nope-nope"})

        [attempt] = app.state.memory_store.login_attempts
        assert attempt.success is False
        assert attempt.ip_address == "testclient"

    def test_email_as_typed_at_registration(self, client: TestClient) -> None:
        user_id = register(client, email="Alice@Example.com")

        response = client.post("/v1/login", json={"emailOrUsername": "Alice@Example.com", "password": "wonderland1"})

        assert response.status_code == 200
        assert response.json()["user"]["id"] == user_id

    def test_me_rejects_bad_token(self, client: TestClient) -> None:
        response = client.get("/v1/me", headers={"Authorization": "Bearer not.a.jwt"})

        assert response.status_code == 401


class TestEmailVerification:
    def test_send_and_verify(self, client: TestClient, outbox: CapturingStrategy) -> None:
        response = client.post("/v1/verification/send-email", json={"email": "bob@example.com"})

        assert response.status_code == 200
        body = response.json()
        assert "expiresAt" in body
        assert outbox.last_code not in response.text

        verified = client.post(
            "/v1/verification/verify-email", json={"email": "bob@example.com", "code": outbox.last_code}
        )
        assert verified.status_code == 200
        assert verified.json() == {"verified": True}

    def test_wrong_code(self, client: TestClient, outbox: CapturingStrategy) -> None:
        client.post("/v1/verification/send-email", json={"email": "bob@example.com"})
        wrong = "000000" if outbox.last_code != "000000" else "111111"

        response = client.post("/v1/verification/verify-email", json={"email": "bob@example.com", "code": wrong})

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid or expired verification code"

    def test_malformed_code_is_validation_error(self, client: TestClient) -> None:
        response = client.post("/v1/verification/verify-email", json={"email": "bob@example.com", "code": "12ab"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Validation failed"

    def test_registered_email_refused(self, client: TestClient) -> None:
        register(client)

        response = client.post("/v1/verification/send-email", json={"email": "alice@example.com"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Email is already registered"

    def test_identity_email_verification(self, client: TestClient, outbox: CapturingStrategy) -> None:
        user_id = register(client)

        response = client.post("/v1/verification/send-email-user", json={"userId": user_id})
        assert response.status_code == 200

        client.post(
            "/v1/verification/verify-email", json={"email": "alice@example.com", "code": outbox.last_code}
        )

        status = client.get(f"/v1/verification/status/{user_id}").json()
        assert status["emailVerified"] is True

    def test_delivery_failure_is_500(self, client: TestClient, outbox: CapturingStrategy, app: FastAPI) -> None:
        outbox.fail = True

        response = client.post("/v1/verification/send-email", json={"email": "bob@example.com"})

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to send verification code. Please try again."
        assert app.state.memory_store.verifications == {}

    def test_status_unknown_user(self, client: TestClient) -> None:
        response = client.get("/v1/verification/status/00000000-0000-0000-0000-000000000000")
        assert response.status_code == 404


class TestMobileVerification:
    def test_send_and_verify(self, client: TestClient, outbox: CapturingStrategy) -> None:
        response = client.post("/v1/verification/send-mobile", json={"mobileNumber": "+1 555 010 9999"})
        assert response.status_code == 200
        assert outbox.messages[-1].request.channel is Channel.SMS

        verified = client.post(
            "/v1/verification/verify-mobile",
            json={"mobileNumber": "+1-555-010-9999", "code": outbox.last_code},
        )
        assert verified.status_code == 200


class TestPasswordReset:
    def test_unknown_email_looks_identical(self, client: TestClient, outbox: CapturingStrategy) -> None:
        register(client)

        known = client.post("/v1/request-password-reset", json={"email": "alice@example.com"})
        unknown = client.post("/v1/request-password-reset", json={"email": "nobody@example.com"})

        assert known.status_code == unknown.status_code == 200
        assert known.json()["message"] == unknown.json()["message"]
        assert set(known.json()) == set(unknown.json())
        assert len(outbox.messages) == 1

    def test_full_reset_flow(self, client: TestClient, outbox: CapturingStrategy) -> None:
        register(client)
        client.post("/v1/request-password-reset", json={"email": "alice@example.com"})

        token_response = client.post(
            "/v1/verify-reset-code", json={"email": "alice@example.com", "code": outbox.last_code}
        )
        assert token_response.status_code == 200
        reset_token = token_response.json()["resetToken"]

        reset = client.post("/v1/reset-password", json={"resetToken": reset_token, "newPassword": "looking-glass-2"})
        assert reset.status_code == 200

        replay = client.post("/v1/reset-password", json={"resetToken": reset_token, "newPassword": "another-pass"})
        assert replay.status_code == 400
        assert replay.json()["detail"] == "Invalid or expired reset token"

        old = client.post("/v1/login", json={"emailOrUsername": "alice", "password": "wonderland1"})
        new = client.post("/v1/login", json={"emailOrUsername": "alice", "password": "looking-glass-2"})
        assert old.status_code == 401
        assert new.status_code == 200

    def test_short_new_password(self, client: TestClient) -> None:
        response = client.post("/v1/reset-password", json={"resetToken": "abc", "newPassword": "short"})
        assert response.status_code == 400


class TestUsernameRecovery:
    def test_full_flow(self, client: TestClient, outbox: CapturingStrategy) -> None:
        register(client)
        client.post("/v1/request-username-recovery", json={"email": "alice@example.com"})

        token = client.post(
            "/v1/verify-username-code", json={"email": "alice@example.com", "code": outbox.last_code}
        ).json()["resetToken"]

        response = client.post("/v1/recover-username", json={"resetToken": token})
        assert response.status_code == 200
        assert response.json() == {"username": "alice"}

        replay = client.post("/v1/recover-username", json={"resetToken": token})
        assert replay.status_code == 400


class TestSecurityQuestion:
    def test_correct_and_wrong(self, client: TestClient) -> None:
        register(client)

        ok = client.post("/v1/verify-security-question", json={"emailOrUsername": "alice", "securityAnswer": "dinah"})
        bad = client.post("/v1/verify-security-question", json={"emailOrUsername": "alice", "securityAnswer": "tom"})

        assert ok.status_code == 200
        assert bad.status_code == 401


class TestGatewayCallbacks:
    def test_relay_mode_set_code(self, client: TestClient, monkeypatch: pytest.MonkeyPatch, app: FastAPI) -> None:
        """Without inline reporting, codes arrive only through set-code."""
        monkeypatch.setenv("INLINE_CODE_REPORTING", "false")
        get_settings.cache_clear()

        client.post("/v1/verification/send-email", json={"email": "bob@example.com"})
        [record_id] = app.state.memory_store.verifications

        record = client.get(f"/v1/gateway/records/{record_id}")
        assert record.status_code == 200
        assert record.json()["isUsed"] is False
        assert "code" not in record.json()

        response = client.post("/v1/gateway/set-code", json={"recordId": str(record_id), "code": "246810"})
        assert response.status_code == 200

        verified = client.post("/v1/verification/verify-email", json={"email": "bob@example.com", "code": "246810"})
        assert verified.status_code == 200

    def test_set_code_unknown_record(self, client: TestClient) -> None:
        response = client.post(
            "/v1/gateway/set-code",
            json={"recordId": "00000000-0000-0000-0000-000000000000", "code": "123456"},
        )
        assert response.status_code == 404

    def test_set_code_malformed(self, client: TestClient) -> None:
        response = client.post(
            "/v1/gateway/set-code",
            json={"recordId": "00000000-0000-0000-0000-000000000000", "code": "12345a"},
        )
        assert response.status_code == 400

    def test_set_code_on_used_record(self, client: TestClient, outbox: CapturingStrategy, app: FastAPI) -> None:
        client.post("/v1/verification/send-email", json={"email": "bob@example.com"})
        client.post("/v1/verification/verify-email", json={"email": "bob@example.com", "code": outbox.last_code})
        [record_id] = app.state.memory_store.verifications

        response = client.post("/v1/gateway/set-code", json={"recordId": str(record_id), "code": "123456"})

        assert response.status_code == 400


class TestLongPasswords:
    """Passwords past bcrypt's 72-byte input limit are valid input."""

    LONG = "x" * 100

    def test_register_login_and_reset(self, client: TestClient, outbox: CapturingStrategy) -> None:
        response = client.post("/v1/register/step1", json=STEP1)
        user_id = response.json()["userId"]

        step2 = client.post(
            "/v1/register/step2",
            json={
                "userId": user_id,
                "username": "alice",
                "password": self.LONG,
                "securityQuestion": "Name of your first cat?",
                "securityAnswer": "Dinah",
            },
        )
        assert step2.status_code == 200

        step3 = client.post(
            "/v1/register/step3",
            json={
                "userId": user_id,
                "street": "Rabbit Hole Lane",
                "houseNumber": "7",
                "city": "Oxford",
                "postalCode": "OX1 1AA",
                "mobileNumber": "+447700900123",
                "currency": "GBP",
            },
        )
        assert step3.status_code == 200

        login = client.post("/v1/login", json={"emailOrUsername": "alice", "password": self.LONG})
        assert login.status_code == 200

        client.post("/v1/request-password-reset", json={"email": "alice@example.com"})
        token = client.post(
            "/v1/verify-reset-code", json={"email": "alice@example.com", "code": outbox.last_code}
        ).json()["resetToken"]
        reset = client.post("/v1/reset-password", json={"resetToken": token, "newPassword": "y" * 100})
        assert reset.status_code == 200

        relogin = client.post("/v1/login", json={"emailOrUsername": "alice", "password": "y" * 100})
        assert relogin.status_code == 200

    def test_login_with_long_password(self, client: TestClient) -> None:
        register(client)

        response = client.post("/v1/login", json={"emailOrUsername": "alice", "password": "z" * 100})

        assert response.status_code == 401
        assert response.json() == {"detail": "Invalid credentials"}


class TestConfiguredCodeLength:
    def test_eight_digit_codes(
        self, client: TestClient, outbox: CapturingStrategy, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("CODE_LENGTH", "8")
        get_settings.cache_clear()

        sent = client.post("/v1/verification/send-email", json={"email": "bob@example.com"})
        assert sent.status_code == 200
        assert len(outbox.last_code) == 8

        verified = client.post(
            "/v1/verification/verify-email", json={"email": "bob@example.com", "code": outbox.last_code}
        )
        assert verified.status_code == 200

    def test_wrong_length_rejected(self, client: TestClient) -> None:
        response = client.post("/v1/verification/verify-email", json={"email": "bob@example.com", "code": "12345678"})

        assert response.status_code == 400
