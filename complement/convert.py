"""Converting an anonymised account snapshot into a deployable blueprint."""

from __future__ import annotations

import copy
import logging
import re
from collections import defaultdict
from typing import Any

from .anon import AnonSnapshotRoom, Snapshot, split_matrix_id
from .blueprints import AccountData, Blueprint, Event, Homeserver, Room, User
from .redact import NO_ENCRYPTED_DEVICE

_logger = logging.getLogger(__name__)

# Event types that cannot yet be recreated in a blueprint.
_IGNORED_EVENT_TYPES = frozenset(
    {
        "m.room.tombstone",
        "m.room.encrypted",
        "m.reaction",
        "m.room.redaction",
    }
)

_NON_ALPHANUMS = re.compile(r"[^a-zA-Z0-9]+")

# One-time keys uploaded for every device that sends encrypted messages.
_ONE_TIME_KEYS = 100


def _get(node: Any, *path: str) -> Any:
    for part in path:
        if isinstance(node, dict) and part in node:
            node = node[part]
        else:
            return None
    return node


def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _json_object(value: Any) -> dict[str, Any]:
    return copy.deepcopy(value) if isinstance(value, dict) else {}


def _create_content(event: Any) -> dict[str, Any] | None:
    if not isinstance(event, dict) or "content" not in event:
        raise ValueError("create event has no content")
    content = event["content"]
    if content is None:
        return None
    if not isinstance(content, dict):
        raise ValueError("create event content is not an object")
    return copy.deepcopy(content)


def _state_key_of(event: Any) -> str | None:
    if isinstance(event, dict) and "state_key" in event:
        return _str(event["state_key"])
    return None


def _event_from(event: Any) -> Event:
    return Event(
        type=_str(_get(event, "type")),
        sender=_str(_get(event, "sender")),
        state_key=_state_key_of(event),
        content=_json_object(_get(event, "content")),
    )


def _membership_event(sender: str, target: str, membership: str) -> Event:
    return Event(
        type="m.room.member",
        sender=sender,
        state_key=target,
        content={"membership": membership},
    )


def convert_to_blueprint(snapshot: Snapshot, server_name: str) -> Blueprint:
    """Build a single-homeserver blueprint that recreates `snapshot`."""
    bp = Blueprint(
        # Docker image names only accept these characters.
        name="snapshot_" + _NON_ALPHANUMS.sub("", snapshot.user_id),
        # Keeping every user's token could mean tens of thousands of labels.
        keep_access_tokens_for_users=[snapshot.user_id],
    )
    hs = Homeserver(name=server_name)
    _logger.info("Blueprint: creating users (%d)", len(snapshot.devices))
    for user_id, devices in snapshot.devices.items():
        local, _ = split_matrix_id(user_id)
        for device in devices:
            user = User(localpart=local, display_name=local, device_id=device)
            if device != NO_ENCRYPTED_DEVICE:
                user.one_time_keys = _ONE_TIME_KEYS
            if user_id == snapshot.user_id:
                dms = {k: list(v) for k, v in snapshot.account_data_dms.items()}
                user.account_data.append(
                    AccountData(type="m.direct", value={"content": dms})
                )
            hs.users.append(user)

    _logger.info("Blueprint: creating rooms (%d)", len(snapshot.rooms))
    for snapshot_room in snapshot.rooms:
        room = convert_room(snapshot_room)
        if room is None:
            _logger.info("  skipping room %s", snapshot_room.id)
            continue
        hs.rooms.append(room)

    remove_unused_users(hs)
    _logger.info("Blueprint: cleaned user list (%d)", len(hs.users))
    bp.homeservers.append(hs)
    return bp


def convert_room(room: AnonSnapshotRoom) -> Room | None:
    """Turn a snapshot room into blueprint events, or None if it cannot be."""
    if not room.state:
        return _convert_timeline_only_room(room)
    out = Room(ref=room.id, creator=room.creator)
    memberships: dict[str, list[str]] = defaultdict(list)
    other_state: list[Any] = []
    creator_membership = ""
    pl_event: Any = None

    for ev in room.state:
        ev_type = _str(_get(ev, "type"))
        if ev_type in _IGNORED_EVENT_TYPES:
            continue
        if ev_type == "m.room.create":
            try:
                out.create_room = _create_content(ev)
            except ValueError as exc:
                _logger.info("  cannot convert room, cannot read m.room.create content: %s", exc)
                return None
        elif ev_type == "m.room.member":
            membership = _str(_get(ev, "content", "membership"))
            user_id = _str(_get(ev, "state_key"))
            if user_id == room.creator:
                # The creator sets up the room, so their membership is applied last.
                creator_membership = membership
            else:
                memberships[membership].append(user_id)
        elif ev_type == "m.room.power_levels":
            pl_event = ev
        else:
            other_state.append(ev)

    out.events.append(
        Event(
            type="m.room.join_rules",
            sender=room.creator,
            state_key="",
            content={"join_rule": "public"},
        )
    )
    for user_id in memberships["join"]:
        out.events.append(_membership_event(user_id, user_id, "join"))
    for user_id in memberships["invite"]:
        out.events.append(_membership_event(room.creator, user_id, "invite"))
    for user_id in memberships["ban"]:
        out.events.append(_membership_event(room.creator, user_id, "ban"))
    for ev in other_state:
        out.events.append(
            Event(
                type=_str(_get(ev, "type")),
                sender=room.creator,
                state_key=_str(_get(ev, "state_key")),
                content=_json_object(_get(ev, "content")),
            )
        )
    # Power levels come last as they may stop the creator doing anything else.
    if pl_event is not None:
        out.events.append(
            Event(
                type="m.room.power_levels",
                sender=room.creator,
                state_key="",
                content=_json_object(_get(pl_event, "content")),
            )
        )

    can_be_left = set(memberships["invite"]) | set(memberships["join"]) | set(memberships["ban"])
    for ev in room.timeline:
        ev_type = _str(_get(ev, "type"))
        if ev_type in _IGNORED_EVENT_TYPES:
            continue
        state_key = _state_key_of(ev)
        if ev_type == "m.room.member" and state_key is not None:
            membership = _str(_get(ev, "content", "membership"))
            if state_key == room.creator:
                # Merge creator memberships so the room is never left empty.
                creator_membership = membership
                continue
            if membership == "leave" and state_key not in can_be_left:
                # A leave -> leave transition is rejected by the server.
                continue
        out.events.append(_event_from(ev))

    if creator_membership in ("invite", "ban", "leave"):
        out.events.append(_membership_event(room.creator, room.creator, "leave"))
    return out


def _convert_timeline_only_room(room: AnonSnapshotRoom) -> Room | None:
    out = Room(ref=room.id, creator=room.creator)
    for ev in room.timeline:
        ev_type = _str(_get(ev, "type"))
        if ev_type in _IGNORED_EVENT_TYPES:
            continue
        if ev_type == "m.room.create":
            try:
                out.create_room = _create_content(ev)
            except ValueError as exc:
                _logger.info("  cannot convert room, cannot read m.room.create content: %s", exc)
                return None
        else:
            out.events.append(_event_from(ev))
    return out


def remove_unused_users(homeserver: Homeserver) -> None:
    """Drop users who neither send an event nor are the target of a membership."""
    active: set[str] = set()
    for room in homeserver.rooms:
        for ev in room.events:
            if ev.type == "m.room.member" and ev.state_key is not None:
                active.add(split_matrix_id(ev.state_key)[0])
            active.add(split_matrix_id(ev.sender)[0])
    homeserver.users = [u for u in homeserver.users if u.localpart in active]