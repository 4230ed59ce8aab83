import hashlib
import hmac
import json
import logging

from app.celery_app import celery_app
from app.config import settings

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Review-Signature"


@celery_app.task(
    name="app.tasks.notifications.deliver_notification",
    ignore_result=True,
    bind=True,
    max_retries=5,
    default_retry_delay=10,
)
def deliver_notification(
    self: "celery_app.Task",  # type: ignore[name-defined]
    event: dict,
) -> None:
    """Hand one notification event to the configured webhook."""
    url = settings.notification_webhook_url
    if not url:
        logger.info(
            "Notification %s for %s (no webhook configured)",
            event.get("type"),
            ", ".join(event.get("target_user_ids") or []),
        )
        return

    if _post_event(url, settings.notification_webhook_secret, event):
        return
    try:
        self.retry(countdown=10 * (2 ** (self.request.retries or 0)))
    except self.MaxRetriesExceededError:
        logger.error("Notification %s exhausted retries", event.get("type"))


def sign(secret: str, body: str) -> str:
    return hmac.new(secret.encode(), body.encode(), hashlib.sha256).hexdigest()


def _post_event(url: str, secret: str | None, event: dict) -> bool:
    import httpx

    body = json.dumps(event, default=str)
    headers: dict[str, str] = {"Content-Type": "application/json"}
    if secret:
        headers[SIGNATURE_HEADER] = sign(secret, body)

    try:
        with httpx.Client(timeout=settings.notification_timeout_seconds) as client:
            resp = client.post(url, content=body, headers=headers)
    except (httpx.HTTPError, OSError) as e:
        logger.warning("Notification delivery to %s failed: %s", url, e)
        return False
    if 200 <= resp.status_code < 300:
        logger.info("Delivered notification %s", event.get("type"))
        return True
    logger.warning(
        "Notification delivery to %s returned %s", url, resp.status_code
    )
    return False
