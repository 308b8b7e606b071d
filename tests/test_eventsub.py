"""Tests for EventSub signature verification and the webhook route."""

from __future__ import annotations

import hashlib
import hmac
import json
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from clipsync.core.dependencies import get_eventsub_verifier, get_sync_service
from clipsync.core.exceptions import SignatureInvalidError
from clipsync.routers import eventsub_router
from clipsync.services.eventsub import (
    EventSubVerifier,
    compute_signature,
    parse_message_timestamp,
    verify_signature,
)

SECRET = "s3cret-webhook"


def _now_timestamp() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.123456789Z")


def _signed_headers(
    body: bytes,
    message_type: str,
    *,
    message_id: str = "msg-1",
    timestamp: str | None = None,
    secret: str = SECRET,
) -> dict[str, str]:
    timestamp = timestamp or _now_timestamp()
    return {
        "Twitch-Eventsub-Message-Id": message_id,
        "Twitch-Eventsub-Message-Timestamp": timestamp,
        "Twitch-Eventsub-Message-Signature": compute_signature(
            secret, message_id, timestamp, body
        ),
        "Twitch-Eventsub-Message-Type": message_type,
        "Content-Type": "application/json",
    }


def _notification_body(clip_id: str = "NewClip1") -> bytes:
    return json.dumps(
        {
            "subscription": {"type": "clip.create", "version": "1"},
            "event": {"id": clip_id, "broadcaster_user_id": "1234"},
        }
    ).encode()


# ---------------------------------------------------------------------------
# Signature helpers
# ---------------------------------------------------------------------------


class TestSignature:
    def test_known_vector(self) -> None:
        """sha256= prefix over id + timestamp + body."""
        expected = hmac.new(b"k", b"id" + b"ts" + b"{}", hashlib.sha256).hexdigest()
        assert compute_signature("k", "id", "ts", b"{}") == f"sha256={expected}"

    def test_verify_accepts_matching(self) -> None:
        sig = compute_signature(SECRET, "id", "ts", b"body")
        assert verify_signature(SECRET, "id", "ts", b"body", sig) is True

    def test_verify_rejects_tampered_body(self) -> None:
        sig = compute_signature(SECRET, "id", "ts", b"body")
        assert verify_signature(SECRET, "id", "ts", b"body!", sig) is False

    def test_parses_nanosecond_timestamp(self) -> None:
        parsed = parse_message_timestamp("2023-07-19T14:56:51.634234626Z")
        assert parsed == datetime(2023, 7, 19, 14, 56, 51, 634234, tzinfo=UTC)


class TestVerifier:
    def test_missing_headers_rejected(self) -> None:
        with pytest.raises(SignatureInvalidError):
            EventSubVerifier(SECRET).verify({}, b"{}")

    def test_stale_message_rejected(self) -> None:
        body = b"{}"
        old = (datetime.now(UTC) - timedelta(minutes=11)).strftime("%Y-%m-%dT%H:%M:%SZ")
        headers = _signed_headers(body, "notification", timestamp=old)

        with pytest.raises(SignatureInvalidError):
            EventSubVerifier(SECRET, max_age_seconds=600).verify(headers, body)

    def test_duplicate_ids_detected(self) -> None:
        verifier = EventSubVerifier(SECRET)
        assert verifier.is_duplicate("m1") is False
        assert verifier.is_duplicate("m1") is True
        assert verifier.is_duplicate("m2") is False


# ---------------------------------------------------------------------------
# Webhook route
# ---------------------------------------------------------------------------


@pytest.fixture
def sync_service() -> MagicMock:
    service = MagicMock()
    service.handle_clip_created = AsyncMock(return_value={"id": "NewClip1"})
    return service


@pytest.fixture
def client(sync_service: MagicMock) -> TestClient:
    app = FastAPI()
    app.include_router(eventsub_router.router)
    verifier = EventSubVerifier(SECRET)
    app.dependency_overrides[get_eventsub_verifier] = lambda: verifier
    app.dependency_overrides[get_sync_service] = lambda: sync_service
    return TestClient(app)


class TestEventSubRoute:
    def test_challenge_echoed_verbatim(self, client: TestClient) -> None:
        body = json.dumps(
            {"challenge": "pogchamp-kappa-360noscope", "subscription": {"type": "clip.create"}}
        ).encode()

        response = client.post(
            "/webhook/eventsub",
            content=body,
            headers=_signed_headers(body, "webhook_callback_verification"),
        )

        assert response.status_code == 200
        assert response.text == "pogchamp-kappa-360noscope"
        assert response.headers["content-type"].startswith("text/plain")

    def test_bad_signature_rejected_without_side_effects(
        self, client: TestClient, sync_service: MagicMock
    ) -> None:
        body = _notification_body()
        headers = _signed_headers(body, "notification", secret="wrong-secret")

        response = client.post("/webhook/eventsub", content=body, headers=headers)

        assert response.status_code == 403
        sync_service.handle_clip_created.assert_not_called()

    def test_notification_triggers_resync(
        self, client: TestClient, sync_service: MagicMock
    ) -> None:
        body = _notification_body("NewClip1")

        response = client.post(
            "/webhook/eventsub", content=body, headers=_signed_headers(body, "notification")
        )

        assert response.status_code == 200
        sync_service.handle_clip_created.assert_awaited_once_with("NewClip1")

    def test_redelivery_processed_once(self, client: TestClient, sync_service: MagicMock) -> None:
        body = _notification_body("NewClip1")

        for _ in range(2):
            response = client.post(
                "/webhook/eventsub",
                content=body,
                headers=_signed_headers(body, "notification", message_id="same-id"),
            )
            assert response.status_code == 200

        assert sync_service.handle_clip_created.await_count == 1

    def test_processing_error_still_acknowledged(
        self, client: TestClient, sync_service: MagicMock
    ) -> None:
        sync_service.handle_clip_created.side_effect = RuntimeError("upstream down")
        body = _notification_body()

        response = client.post(
            "/webhook/eventsub", content=body, headers=_signed_headers(body, "notification")
        )

        assert response.status_code == 200

    def test_revocation_acknowledged(self, client: TestClient, sync_service: MagicMock) -> None:
        body = json.dumps(
            {"subscription": {"type": "clip.create", "status": "authorization_revoked"}}
        ).encode()

        response = client.post(
            "/webhook/eventsub", content=body, headers=_signed_headers(body, "revocation")
        )

        assert response.status_code == 200
        sync_service.handle_clip_created.assert_not_called()

    def test_signed_non_object_body_rejected(
        self, client: TestClient, sync_service: MagicMock
    ) -> None:
        body = b"[]"

        response = client.post(
            "/webhook/eventsub", content=body, headers=_signed_headers(body, "notification")
        )

        assert response.status_code == 400
        sync_service.handle_clip_created.assert_not_called()

    @pytest.mark.parametrize(
        "payload",
        [
            {"subscription": None, "event": {"id": "NewClip1"}},
            {"subscription": "clip.create", "event": None},
            {"subscription": {"type": "clip.create"}, "event": ["NewClip1"]},
        ],
    )
    def test_malformed_notification_acknowledged_and_ignored(
        self, client: TestClient, sync_service: MagicMock, payload: dict
    ) -> None:
        body = json.dumps(payload).encode()

        response = client.post(
            "/webhook/eventsub", content=body, headers=_signed_headers(body, "notification")
        )

        assert response.status_code == 200
        sync_service.handle_clip_created.assert_not_called()

    def test_verification_with_null_subscription(self, client: TestClient) -> None:
        body = json.dumps({"challenge": "abc", "subscription": None}).encode()

        response = client.post(
            "/webhook/eventsub",
            content=body,
            headers=_signed_headers(body, "webhook_callback_verification"),
        )

        assert response.status_code == 200
        assert response.text == "abc"
