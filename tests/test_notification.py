"""Tests for Teams notifications."""

from typing import Any, Dict, List

import pytest
import requests

from pushcert.config_loader import NotificationsConfig, TeamsNotificationConfig
from pushcert.notification import NotificationContext, NotificationManager, TeamsWebhookNotifier


class FakeResponse:
    def __init__(self, status_code: int, text: str = "") -> None:
        self.status_code = status_code
        self.text = text


@pytest.fixture
def posts(monkeypatch: pytest.MonkeyPatch) -> List[Dict[str, Any]]:
    """Capture webhook posts instead of sending them."""
    calls: List[Dict[str, Any]] = []

    def fake_post(url, **kwargs):
        calls.append({"url": url, **kwargs})
        return FakeResponse(200)

    monkeypatch.setattr("pushcert.notification.requests.post", fake_post)
    return calls


SUCCESS = NotificationContext(
    app_id="com.example.FanFB",
    action="configure_new",
    status="SUCCESS",
    pem_path="/certs/com.example.FanFB.pem",
)


class TestTeamsWebhookNotifier:
    """Tests for TeamsWebhookNotifier."""

    def test_payload(self) -> None:
        notifier = TeamsWebhookNotifier(TeamsNotificationConfig(enabled=True, webhook_url="https://hook"))
        payload = notifier.build_payload(SUCCESS)

        assert payload["@type"] == "MessageCard"
        assert payload["themeColor"] == "28a745"
        facts = {f["name"]: f["value"] for f in payload["sections"][0]["facts"]}
        assert facts == {
            "App": "com.example.FanFB",
            "Action": "configure_new",
            "Status": "SUCCESS",
            "Certificate": "/certs/com.example.FanFB.pem",
        }

    def test_failure_payload(self) -> None:
        notifier = TeamsWebhookNotifier(TeamsNotificationConfig(enabled=True, webhook_url="https://hook"))
        payload = notifier.build_payload(NotificationContext(
            app_id="com.example.FanFB",
            action="renew_existing",
            status="FAILED",
            failure_reason="Timed out",
        ))

        assert payload["themeColor"] == "dc3545"
        facts = {f["name"]: f["value"] for f in payload["sections"][0]["facts"]}
        assert facts["Failure Reason"] == "Timed out"

    def test_send(self, posts: List[Dict[str, Any]]) -> None:
        notifier = TeamsWebhookNotifier(TeamsNotificationConfig(enabled=True, webhook_url="https://hook"))

        assert notifier.send(SUCCESS) is True
        assert posts[0]["url"] == "https://hook"
        assert posts[0]["timeout"] == 30
        assert posts[0]["json"]["summary"] == "Push certificate SUCCESS for com.example.FanFB"

    def test_missing_webhook(self, posts: List[Dict[str, Any]], monkeypatch: pytest.MonkeyPatch) -> None:
        """The webhook comes only from configuration, not straight from the environment."""
        monkeypatch.setenv("TEAMS_WEBHOOK_URL", "https://env-hook")
        notifier = TeamsWebhookNotifier(TeamsNotificationConfig(enabled=True))

        assert notifier.send(SUCCESS) is False
        assert posts == []

    def test_error_status(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            "pushcert.notification.requests.post",
            lambda url, **kwargs: FakeResponse(400, "Bad payload"),
        )
        notifier = TeamsWebhookNotifier(TeamsNotificationConfig(enabled=True, webhook_url="https://hook"))
        assert notifier.send(SUCCESS) is False

    def test_request_exception(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def fail(url, **kwargs):
            raise requests.ConnectionError("unreachable")

        monkeypatch.setattr("pushcert.notification.requests.post", fail)
        notifier = TeamsWebhookNotifier(TeamsNotificationConfig(enabled=True, webhook_url="https://hook"))
        assert notifier.send(SUCCESS) is False


class TestNotificationManager:
    """Tests for NotificationManager."""

    def test_disabled(self, posts: List[Dict[str, Any]]) -> None:
        manager = NotificationManager(NotificationsConfig())
        assert not manager.is_enabled()
        manager.notify(SUCCESS)
        assert posts == []

    def test_enabled(self, posts: List[Dict[str, Any]]) -> None:
        manager = NotificationManager(NotificationsConfig(
            teams=TeamsNotificationConfig(enabled=True, webhook_url="https://hook")
        ))
        assert manager.is_enabled()
        manager.notify(SUCCESS)
        assert len(posts) == 1

    def test_notifier_errors_do_not_propagate(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A broken notifier should never interrupt the run."""
        def explode(url, **kwargs):
            raise RuntimeError("unexpected")

        monkeypatch.setattr("pushcert.notification.requests.post", explode)
        manager = NotificationManager(NotificationsConfig(
            teams=TeamsNotificationConfig(enabled=True, webhook_url="https://hook")
        ))
        manager.notify(SUCCESS)
