from typing import Any, Optional

from pendulum import DateTime

from constants import EventType
from models import ModerationAction, ModerationEvent
from services.errors import MalformedEventError
from services.helper.helper import parse_rfc3339

ACTIONS = {
    EventType.Ban: ModerationAction.Ban,
    EventType.Unban: ModerationAction.Unban,
    EventType.ModeratorAdd: ModerationAction.ModAdd,
    EventType.ModeratorRemove: ModerationAction.ModRemove,
}


def _require_str(event: dict[str, Any], field: str) -> str:
    value = event.get(field)
    if not isinstance(value, str):
        raise MalformedEventError(f"Missing or invalid field: {field}")
    return value


def _parse_expiry(event: dict[str, Any]) -> Optional[DateTime]:
    # Only an explicit is_permanent=false marks a timeout
    if event.get("is_permanent") is not False:
        return None
    ends_at = _require_str(event, "ends_at")
    try:
        return parse_rfc3339(ends_at)
    except (ValueError, TypeError) as e:
        raise MalformedEventError(f"Invalid ends_at: {ends_at!r}") from e


def normalize_event(
    event_type: str,
    broadcaster_id: str,
    event: Optional[dict[str, Any]],
    created_at: DateTime,
) -> ModerationEvent:
    """
    Turn a provider event body into a ModerationEvent.

    Field presence is mandatory per event type; a missing field raises
    MalformedEventError.
    """
    try:
        kind = EventType(event_type)
    except ValueError as e:
        raise MalformedEventError(f"Unsupported event type: {event_type}") from e

    if not isinstance(event, dict):
        raise MalformedEventError("Missing event body")

    fields: dict[str, Any] = {
        "broadcaster_id": broadcaster_id,
        "broadcaster_name": _require_str(event, "broadcaster_user_name"),
        "target_user_name": _require_str(event, "user_name"),
        "action": ACTIONS[kind],
        "created_at": created_at,
    }

    if kind == EventType.Ban:
        fields["reason"] = _require_str(event, "reason")

    if kind in (EventType.Ban, EventType.Unban):
        fields["moderator_name"] = _require_str(event, "moderator_user_name")
        fields["moderator_id"] = _require_str(event, "moderator_user_id")

    if kind == EventType.Ban:
        fields["expires_at"] = _parse_expiry(event)

    return ModerationEvent(**fields)
