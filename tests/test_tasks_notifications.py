import json
import uuid
from dataclasses import replace
from unittest.mock import patch

import httpx

from app.config import settings
from app.services.notification import (
    NotificationEvent,
    build_event,
    publish_notification,
)
from app.tasks.notifications import (
    SIGNATURE_HEADER,
    _post_event,
    deliver_notification,
    sign,
)
from tests.mocks import FakeHTTPXClient, FakeHTTPXResponse


def _event():
    return NotificationEvent(
        type="document.submitted",
        title="Review requested",
        message="please review",
        link="/documents/1",
        target_user_ids=(uuid.uuid4(),),
    )


class TestBuildEvent:
    def test_excludes_actor_and_duplicates(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        event = build_event("x", "t", "m", None, [a, b, a, None], exclude=b)
        assert event.target_user_ids == (a,)

    def test_actor_kept_when_sole_target(self):
        a = uuid.uuid4()
        event = build_event("x", "t", "m", None, [a, a], exclude=a)
        assert event.target_user_ids == (a,)

    def test_no_targets(self):
        assert build_event("x", "t", "m", None, [None]) is None


class TestPublishNotification:
    @patch("app.tasks.notifications.deliver_notification.delay")
    def test_queues_payload(self, mock_delay):
        event = _event()
        publish_notification(event)
        mock_delay.assert_called_once()
        payload = mock_delay.call_args.args[0]
        assert payload["type"] == "document.submitted"
        assert payload["target_user_ids"] == [str(event.target_user_ids[0])]

    @patch("app.tasks.notifications.deliver_notification.delay")
    def test_skips_empty_targets(self, mock_delay):
        publish_notification(NotificationEvent("x", "t", "m"))
        mock_delay.assert_not_called()

    @patch(
        "app.tasks.notifications.deliver_notification.delay",
        side_effect=RuntimeError("broker down"),
    )
    def test_never_raises(self, mock_delay):
        publish_notification(_event())
        mock_delay.assert_called_once()


class TestPostEvent:
    def test_signs_body(self):
        fake = FakeHTTPXClient()
        payload = _event().to_payload()
        with patch("httpx.Client", fake):
            assert _post_event("https://hooks.test/n", "s3cret", payload) is True
        call = fake.calls[0]
        assert call["url"] == "https://hooks.test/n"
        assert json.loads(call["content"]) == payload
        assert call["headers"][SIGNATURE_HEADER] == sign("s3cret", call["content"])

    def test_unsigned_without_secret(self):
        fake = FakeHTTPXClient()
        with patch("httpx.Client", fake):
            _post_event("https://hooks.test/n", "", _event().to_payload())
        assert SIGNATURE_HEADER not in fake.calls[0]["headers"]

    def test_non_2xx_is_failure(self):
        fake = FakeHTTPXClient(response=FakeHTTPXResponse(status_code=500))
        with patch("httpx.Client", fake):
            assert _post_event("https://hooks.test/n", None, {}) is False

    def test_transport_error_is_failure(self):
        fake = FakeHTTPXClient(error=httpx.ConnectError("refused"))
        with patch("httpx.Client", fake):
            assert _post_event("https://hooks.test/n", None, {}) is False


class TestDeliverNotification:
    def test_without_webhook_only_logs(self):
        with patch("app.tasks.notifications._post_event") as post:
            deliver_notification.run(_event().to_payload())
        post.assert_not_called()

    def test_posts_to_configured_webhook(self):
        configured = replace(
            settings,
            notification_webhook_url="https://hooks.test/n",
            notification_webhook_secret="abc",
        )
        with patch("app.tasks.notifications.settings", configured), patch(
            "app.tasks.notifications._post_event", return_value=True
        ) as post:
            deliver_notification.run(_event().to_payload())
        post.assert_called_once()
        assert post.call_args.args[:2] == ("https://hooks.test/n", "abc")
