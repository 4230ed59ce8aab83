import logging
import uuid
from dataclasses import asdict, dataclass, field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationEvent:
    """One outbound event per successful transition.

    Delivery and inbox storage belong to whatever consumes the event.
    """

    type: str
    title: str
    message: str
    link: str | None = None
    target_user_ids: tuple[uuid.UUID, ...] = field(default_factory=tuple)

    def to_payload(self) -> dict:
        data = asdict(self)
        data["target_user_ids"] = [str(uid) for uid in self.target_user_ids]
        return data


def build_event(
    event_type: str,
    title: str,
    message: str,
    link: str | None,
    targets,
    exclude=None,
) -> NotificationEvent | None:
    """Return an event for the distinct ``targets``, or None if there are none.

    ``exclude`` is dropped from the recipients only while someone else remains,
    so every event reaches at least one user.
    """
    seen: list[uuid.UUID] = []
    for uid in targets:
        if uid is None or uid in seen:
            continue
        seen.append(uid)
    if not seen:
        return None
    recipients = [uid for uid in seen if uid != exclude] or seen
    return NotificationEvent(
        type=event_type,
        title=title,
        message=message,
        link=link,
        target_user_ids=tuple(recipients),
    )


def publish_notification(event: NotificationEvent) -> None:
    """Fire-and-forget notification publishing.

    Queues a Celery task for delivery. Never raises; logs failures and continues.
    """
    if not event.target_user_ids:
        return
    try:
        from app.tasks.notifications import deliver_notification

        deliver_notification.delay(event.to_payload())
        logger.debug(
            "Published notification %s to %d users",
            event.type,
            len(event.target_user_ids),
        )
    except Exception as e:
        logger.exception("Failed to publish notification %s: %s", event.type, e)
