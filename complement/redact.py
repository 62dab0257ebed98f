"""Turning raw /sync data into an anonymised snapshot of an account."""

from __future__ import annotations

import copy
import json
import logging
import math
import re
import unicodedata
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from .anon import AnonMappings, AnonSnapshotRoom, Snapshot, split_matrix_id

_logger = logging.getLogger(__name__)

# Device ID used for users who have sent no encrypted messages.
NO_ENCRYPTED_DEVICE = "device-default"

# @localpart:domain
_USER_ID_RE = re.compile(r"@[A-Za-z0-9\-.=_/]+:[A-Za-z0-9\-.=_/]+")

_LATIN1_SPACES = frozenset("\t\n\v\f\r \x85\xa0")

_MISSING = object()
# Returned by a replacer to store an explicit JSON null.
_NULL = object()

Replacer = Callable[[AnonMappings, Any, Any, str], Any]
Condition = Callable[[AnonMappings, Any, Any, str], bool]


@dataclass(frozen=True)
class Redaction:
    """A rule that keeps one field of an event, optionally replacing its value.

    `key` is the path to the field, one element per object key.
    `replace_with` gets (mappings, event, value, anon_room_id) and returns the
    new value, or None to leave the field out; when it is None itself the
    value is kept as it is. `on_condition`, if given, gets the same arguments
    and decides whether the rule applies.
    """

    key: tuple[str, ...]
    replace_with: Replacer | None = None
    on_condition: Condition | None = None


def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _lookup(node: Any, path: Iterable[str]) -> Any:
    for part in path:
        if isinstance(node, dict) and part in node:
            node = node[part]
        else:
            return _MISSING
    return node


def _get(node: Any, *path: str) -> Any:
    value = _lookup(node, path)
    return None if value is _MISSING else value


def _assign(obj: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
    node = obj
    for part in path[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[path[-1]] = copy.deepcopy(value)


def _iter_values(container: Any) -> Iterator[Any]:
    if isinstance(container, list):
        yield from container
    elif isinstance(container, dict):
        yield from container.values()


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            pass
        try:
            number = float(value)
        except ValueError:
            return 0
        return int(number) if math.isfinite(number) else 0
    return 0


def _keep_char(ch: str) -> bool:
    if ch in _LATIN1_SPACES:
        return True
    category = unicodedata.category(ch)
    if ord(ch) > 0xFF and category in ("Zs", "Zl", "Zp"):
        return True
    return category.startswith("P")


def redact_text(text: str) -> str:
    """Replace every character except whitespace and punctuation with 'x'."""
    return "".join(ch if _keep_char(ch) else "x" for ch in text)


def body_replacer(mappings: AnonMappings, event: Any, value: Any, anon_room_id: str) -> str:
    """Redact a message body, keeping anonymised user IDs readable."""
    anon_ids: list[str] = []

    def substitute(match: re.Match[str]) -> str:
        anon = mappings.user(match.group(0))
        anon_ids.append(anon)
        return anon

    body = _USER_ID_RE.sub(substitute, _str(value))
    redacted = redact_text(body)
    for anon in anon_ids:
        redacted = redacted.replace(redact_text(anon), f" {anon} ", 1)
    return redacted


def _constant(result: Any) -> Replacer:
    return lambda mappings, event, value, anon_room_id: result


def _anon_user(mappings: AnonMappings, event: Any, value: Any, anon_room_id: str) -> str:
    return mappings.user(_str(value))


def _anon_room(mappings: AnonMappings, event: Any, value: Any, anon_room_id: str) -> str:
    return mappings.room(_str(value))


def _redacted(mappings: AnonMappings, event: Any, value: Any, anon_room_id: str) -> str:
    return redact_text(_str(value))


def _redact_string_array(mappings: AnonMappings, event: Any, value: Any, anon_room_id: str) -> Any:
    if not isinstance(value, list):
        return []
    redacted = [redact_text(item) for item in value if isinstance(item, str)]
    return redacted if redacted else _NULL


def _canonical_alias(mappings: AnonMappings, event: Any, value: Any, anon_room_id: str) -> str:
    _, domain = split_matrix_id(_str(value))
    anon_server = mappings.server(domain)
    return "#" + anon_room_id[1:].replace(":", "") + ":" + anon_server


def _member_displayname(mappings: AnonMappings, event: Any, value: Any, anon_room_id: str) -> str:
    target = mappings.user(_str(_get(event, "state_key")))
    local, _ = split_matrix_id(target)
    return local


def _power_level_users(mappings: AnonMappings, event: Any, value: Any, anon_room_id: str) -> dict[str, int]:
    if isinstance(value, dict):
        pairs: Iterable[tuple[str, Any]] = value.items()
    elif isinstance(value, list):
        pairs = (("", item) for item in value)
    else:
        pairs = [("", value)]
    return {mappings.user(_str(user)): _as_int(level) for user, level in pairs}


def _encrypted_summary(mappings: AnonMappings, event: Any, content: Any) -> dict[str, Any]:
    device_id = _str(_get(content, "device_id"))
    return {
        "algorithm": _str(_get(content, "algorithm")),
        "ciphertext_length": len(_str(_get(content, "ciphertext")).encode("utf-8")),
        "device_id": mappings.device(_str(_get(event, "sender")), device_id),
    }


def _encrypted_content(mappings: AnonMappings, event: Any, value: Any, anon_room_id: str) -> dict[str, Any]:
    return _encrypted_summary(mappings, event, value)


def _redaction_content(mappings: AnonMappings, event: Any, value: Any, anon_room_id: str) -> dict[str, Any]:
    if isinstance(value, dict) and "ciphertext" in value:
        return _encrypted_summary(mappings, event, value)
    return {}


def _state_key_is_user(mappings: AnonMappings, event: Any, value: Any, anon_room_id: str) -> bool:
    return _str(value).startswith("@")


def _is_member_event(mappings: AnonMappings, event: Any, value: Any, anon_room_id: str) -> bool:
    return _str(_get(event, "type")) == "m.room.member"


def _is_power_levels_event(mappings: AnonMappings, event: Any, value: Any, anon_room_id: str) -> bool:
    return (
        _str(_get(event, "type")) == "m.room.power_levels"
        and _str(_get(event, "state_key")) == ""
    )


def _keep(*key: str) -> Redaction:
    return Redaction(key)


# Only event types listed here are kept, and of those only the listed fields.
REDACT_RULES: dict[str, list[Redaction]] = {
    "all": [
        Redaction(("sender",), _anon_user),
        Redaction(("room_id",), lambda mappings, event, value, anon_room_id: anon_room_id),
        Redaction(("state_key",), _anon_user, _state_key_is_user),
        _keep("type"),
    ],
    "m.room.create": [
        Redaction(("content", "creator"), _anon_user),
        Redaction(("content", "predecessor", "room_id"), _anon_room),
        _keep("content", "m.federate"),
        _keep("content", "room_version"),
    ],
    "m.room.name": [Redaction(("content", "name"), _redacted)],
    "m.room.topic": [Redaction(("content", "topic"), _redacted)],
    "m.room.avatar": [
        Redaction(("content", "url"), _constant("yes")),
        _keep("content", "info", "h"),
        _keep("content", "info", "w"),
        _keep("content", "info", "mimetype"),
        _keep("content", "info", "size"),
    ],
    "m.room.canonical_alias": [Redaction(("content", "alias"), _canonical_alias)],
    "m.room.server_acl": [
        Redaction(("content", "deny"), _redact_string_array),
        Redaction(("content", "allow"), _redact_string_array),
        _keep("content", "allow_ip_literals"),
    ],
    "m.reaction": [Redaction(("content", "m.relates_to", "event_id"), _constant(""))],
    "m.room.encryption": [
        _keep("content", "algorithm"),
        _keep("content", "rotation_period_ms"),
        _keep("content", "rotation_period_msgs"),
    ],
    "m.room.guest_access": [_keep("content", "guest_access")],
    "m.room.history_visibility": [_keep("content", "history_visibility")],
    "m.room.join_rules": [_keep("content", "join_rule")],
    "org.matrix.room.preview_urls": [_keep("content", "disable")],
    "m.room.tombstone": [
        Redaction(("content", "body"), _redacted),
        Redaction(("content", "replacement_room"), _anon_room),
    ],
    "m.room.pinned_events": [Redaction(("content", "pinned"), _redact_string_array)],
    "m.room.member": [
        Redaction(("content", "avatar_url"), _constant("yes"), _is_member_event),
        Redaction(("content", "displayname"), _member_displayname, _is_member_event),
        Redaction(("content", "reason"), _redacted),
        Redaction(("content", "inviter"), _anon_user),
        _keep("content", "membership"),
    ],
    "m.room.power_levels": [
        Redaction(("content", "users"), _power_level_users, _is_power_levels_event),
        _keep("content", "ban"),
        _keep("content", "events"),
        _keep("content", "events_default"),
        _keep("content", "invite"),
        _keep("content", "kick"),
        _keep("content", "redact"),
        _keep("content", "state_default"),
        _keep("content", "users_default"),
        _keep("content", "notifications"),
    ],
    "m.room.encrypted": [Redaction(("content",), _encrypted_content)],
    "m.room.redaction": [
        Redaction(("content",), _redaction_content),
        Redaction(("content", "reason"), body_replacer),
    ],
    "m.room.message": [
        _keep("content", "msgtype"),
        _keep("content", "format"),
        Redaction(("content", "body"), body_replacer),
        Redaction(("content", "m.new_content", "body"), body_replacer),
    ],
}


def redact_event(
    event: Any,
    anon_room_id: str,
    mappings: AnonMappings,
    rules: Iterable[Redaction],
) -> dict[str, Any]:
    """Build a new event holding only the fields that `rules` keep, replaced."""
    out: dict[str, Any] = {"content": {}}
    for rule in rules:
        value = _lookup(event, rule.key)
        if value is _MISSING:
            continue
        if rule.on_condition is not None and not rule.on_condition(
            mappings, event, value, anon_room_id
        ):
            continue
        if rule.replace_with is None:
            new_value = value
        else:
            new_value = rule.replace_with(mappings, event, value, anon_room_id)
        if new_value is None:
            continue
        _assign(out, rule.key, None if new_value is _NULL else new_value)
    return out


def find_event(ev_type: str, state_key: str, *arrays: Any) -> Any:
    """Return the first event with this type and state key in the arrays, or None."""
    for array in arrays:
        for event in _iter_values(array):
            if (
                _str(_get(event, "type")) == ev_type
                and _str(_get(event, "state_key")) == state_key
            ):
                return event
    return None


def _is_dropped(ev_type: str) -> bool:
    if ev_type in REDACT_RULES:
        return False
    _logger.info("  dropping event type %s", ev_type)
    return True


def _rules_for(ev_type: str) -> list[Redaction]:
    return REDACT_RULES["all"] + REDACT_RULES[ev_type]


def map_anon_room(index: int, room_id: str, room_data: Any, mappings: AnonMappings) -> AnonSnapshotRoom:
    """Anonymise one joined room from /sync.

    Raises ValueError if the room has no create event or it has no sender.
    """
    state_events = _get(room_data, "state", "events")
    timeline_events = _get(room_data, "timeline", "events")
    create_event = find_event("m.room.create", "", state_events, timeline_events)
    if create_event is None:
        raise ValueError("failed to find m.room.create event")
    creator = mappings.user(_str(_get(create_event, "sender")))
    if not creator:
        raise ValueError("failed to find room creator, create event missing sender")
    _, domain = split_matrix_id(creator)
    anon_room_id = f"!{index}:{mappings.server(domain)}"
    room = AnonSnapshotRoom(id=anon_room_id, creator=creator)
    mappings.set_room(room_id, anon_room_id)

    for event in _iter_values(state_events):
        ev_type = _str(_get(event, "type"))
        if _is_dropped(ev_type):
            continue
        out = redact_event(event, anon_room_id, mappings, _rules_for(ev_type))
        room.state.append(
            {
                "content": out.get("content"),
                "sender": _str(out.get("sender")),
                "state_key": _str(out.get("state_key")),
                "type": _str(out.get("type")),
            }
        )
    for event in _iter_values(timeline_events):
        ev_type = _str(_get(event, "type"))
        if _is_dropped(ev_type):
            continue
        out = redact_event(event, anon_room_id, mappings, _rules_for(ev_type))
        entry: dict[str, Any] = {
            "content": out.get("content"),
            "sender": _str(out.get("sender")),
        }
        if "state_key" in out:
            entry["state_key"] = _str(out["state_key"])
        entry["type"] = _str(out.get("type"))
        room.timeline.append(entry)
    return room


def _decode(sync_data: Any) -> Any:
    if isinstance(sync_data, (bytes, bytearray, str)):
        try:
            return json.loads(sync_data)
        except ValueError as exc:
            _logger.warning("sync data is not valid JSON: %s", exc)
            return {}
    return sync_data


def _parse_dm_map(content: Any) -> dict[str, list[str]]:
    if content is _MISSING:
        raise ValueError("m.direct event has no content")
    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ValueError("m.direct content is not an object")
    dm_map: dict[str, list[str]] = {}
    for user_id, room_ids in content.items():
        if room_ids is None:
            dm_map[user_id] = []
            continue
        if not isinstance(room_ids, list):
            raise ValueError(f"m.direct entry for {user_id} is not a list")
        rooms = []
        for room_id in room_ids:
            if room_id is None:
                rooms.append("")
            elif isinstance(room_id, str):
                rooms.append(room_id)
            else:
                raise ValueError(f"m.direct entry for {user_id} holds a non-string")
        dm_map[user_id] = rooms
    return dm_map


def process_account_data_dms(sync_data: Any, mappings: AnonMappings) -> dict[str, list[str]]:
    """Anonymise the m.direct account data: anonymous user -> anonymous room IDs."""
    data = _decode(sync_data)
    anon_dms: dict[str, list[str]] = {}
    for event in _iter_values(_get(data, "account_data", "events")):
        if _str(_get(event, "type")) != "m.direct":
            continue
        try:
            dm_map = _parse_dm_map(_lookup(event, ("content",)))
        except ValueError as exc:
            _logger.warning("Failed to load DM map from account data: %s", exc)
            continue
        for user_id, room_ids in dm_map.items():
            anon_dms[mappings.user(user_id)] = [mappings.room(r) for r in room_ids]
    return anon_dms


def redact(sync_data: Any, mappings: AnonMappings) -> Snapshot:
    """Anonymise a /sync response (raw JSON or decoded) into a snapshot.

    Joined rooms are processed in sorted order of their IDs; rooms that cannot
    be anonymised are skipped.
    """
    data = _decode(sync_data)
    joins = _get(data, "rooms", "join")
    joined = joins if isinstance(joins, dict) else {}
    snapshot = Snapshot()
    room_ids = sorted(joined)
    for i, room_id in enumerate(room_ids):
        _logger.info("Processing room %s %d/%d", room_id, i + 1, len(room_ids))
        try:
            room = map_anon_room(i, room_id, joined[room_id], mappings)
        except ValueError as exc:
            _logger.warning("skipping room - failed to anonymise room: %s", exc)
            continue
        snapshot.rooms.append(room)

    anon_servers = list(mappings.servers.values())
    anon_users = list(mappings.users.values())
    snapshot.servers = anon_servers
    snapshot.account_data_dms = process_account_data_dms(data, mappings)
    snapshot.devices = mappings.device_map()
    for user_id in anon_users:
        snapshot.devices.setdefault(user_id, [NO_ENCRYPTED_DEVICE])
    return snapshot