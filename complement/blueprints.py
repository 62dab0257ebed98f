"""Blueprint data model: a description of homeservers, users and rooms to deploy."""

from __future__ import annotations

import copy
import secrets
from dataclasses import dataclass, field, replace
from typing import Any


class BlueprintError(ValueError):
    """Raised when a blueprint is malformed."""


@dataclass
class Event:
    """An event to send into a room while building a blueprint."""

    type: str
    sender: str = ""
    state_key: str | None = None
    content: dict[str, Any] = field(default_factory=dict)
    # Clients cannot set this; it is ignored when building blueprints.
    unsigned: dict[str, Any] | None = None

    def _to_json(self) -> dict[str, Any]:
        return {
            "Type": self.type,
            "Sender": self.sender,
            "StateKey": self.state_key,
            "Content": self.content,
            "Unsigned": self.unsigned,
        }


@dataclass
class AccountData:
    """A piece of account data to set for a user."""

    type: str
    value: dict[str, Any] = field(default_factory=dict)

    def _to_json(self) -> dict[str, Any]:
        return {"Type": self.type, "Value": self.value}


@dataclass
class User:
    """A user to register on a homeserver."""

    localpart: str
    display_name: str = ""
    avatar_url: str = ""
    account_data: list[AccountData] = field(default_factory=list)
    device_id: str | None = None
    # Number of one-time keys to upload; requires device_id to be set.
    one_time_keys: int = 0

    def _to_json(self) -> dict[str, Any]:
        return {
            "Localpart": self.localpart,
            "DisplayName": self.display_name,
            "AvatarURL": self.avatar_url,
            "AccountData": [ad._to_json() for ad in self.account_data],
            "DeviceID": self.device_id,
            "OneTimeKeys": self.one_time_keys,
        }


@dataclass
class Room:
    """A room to create or join. `ref` links the same room across homeservers."""

    ref: str = ""
    creator: str = ""
    create_room: dict[str, Any] | None = None
    events: list[Event] = field(default_factory=list)

    def _to_json(self) -> dict[str, Any]:
        return {
            "Ref": self.ref,
            "Creator": self.creator,
            "CreateRoom": self.create_room,
            "Events": [ev._to_json() for ev in self.events],
        }


@dataclass
class ApplicationService:
    """An application service registered on a homeserver."""

    id: str
    hs_token: str = ""
    as_token: str = ""
    url: str = ""
    sender_localpart: str = ""
    rate_limited: bool = False

    def _to_json(self) -> dict[str, Any]:
        return {
            "ID": self.id,
            "HSToken": self.hs_token,
            "ASToken": self.as_token,
            "URL": self.url,
            "SenderLocalpart": self.sender_localpart,
            "RateLimited": self.rate_limited,
        }


@dataclass
class Homeserver:
    """A homeserver in a deployment."""

    name: str
    users: list[User] = field(default_factory=list)
    rooms: list[Room] = field(default_factory=list)
    application_services: list[ApplicationService] = field(default_factory=list)

    def _to_json(self) -> dict[str, Any]:
        return {
            "Name": self.name,
            "Users": [u._to_json() for u in self.users],
            "Rooms": [r._to_json() for r in self.rooms],
            "ApplicationServices": [a._to_json() for a in self.application_services],
        }


@dataclass
class Blueprint:
    """An entire deployment to make."""

    name: str
    homeservers: list[Homeserver] = field(default_factory=list)
    # User IDs whose access tokens are kept. If empty, all tokens are kept.
    keep_access_tokens_for_users: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-serialisable form of this blueprint."""
        return {
            "Name": self.name,
            "Homeservers": [hs._to_json() for hs in self.homeservers],
            "KeepAccessTokensForUsers": list(self.keep_access_tokens_for_users),
        }


def validate(bp: Blueprint) -> Blueprint:
    """Check a blueprint and return a normalised copy of it.

    User localparts lose their leading '@', user IDs in rooms gain the
    homeserver's domain, and application services get fresh random tokens.
    """
    if not bp.name:
        raise BlueprintError("Blueprint must have a Name")
    return replace(
        bp,
        homeservers=[_validate_homeserver(hs) for hs in bp.homeservers],
        keep_access_tokens_for_users=list(bp.keep_access_tokens_for_users),
    )


def must_validate(bp: Blueprint) -> Blueprint:
    """Like validate, for blueprints that are known to be correct."""
    try:
        return validate(bp)
    except BlueprintError as exc:
        raise BlueprintError(f"MustValidate: {exc}") from exc


def _validate_homeserver(hs: Homeserver) -> Homeserver:
    users = []
    for user in hs.users:
        if not user.localpart.startswith("@"):
            raise BlueprintError(
                f"HS {hs.name} user localpart '{user.localpart}' must start with '@'"
            )
        if ":" in user.localpart:
            raise BlueprintError(
                f"HS {hs.name} user localpart '{user.localpart}' must not contain a domain"
            )
        users.append(replace(copy.deepcopy(user), localpart=user.localpart[1:]))
    rooms = [_normalise_room(hs.name, room) for room in hs.rooms]
    services = [_normalise_application_service(a) for a in hs.application_services]
    return replace(hs, users=users, rooms=rooms, application_services=services)


def _normalise_room(hs_name: str, room: Room) -> Room:
    creator = room.creator
    if creator:
        creator = _normalise_user(creator, hs_name)
    elif not room.ref:
        raise BlueprintError(f"{hs_name} : room must have either a Ref or a Creator")
    events = []
    for ev in room.events:
        ev = copy.deepcopy(ev)
        ev.sender = _normalise_user(ev.sender, hs_name)
        if ev.state_key is not None and ev.type == "m.room.member":
            ev.state_key = _normalise_user(ev.state_key, hs_name)
        events.append(ev)
    return replace(
        room,
        creator=creator,
        create_room=copy.deepcopy(room.create_room),
        events=events,
    )


def _normalise_user(user_id: str, hs_name: str) -> str:
    if ":" in user_id:
        if user_id.endswith(f":{hs_name}"):
            return user_id
        raise BlueprintError(
            f"HS '{hs_name}' user '{user_id}' must end with ':{hs_name}' or have no domain"
        )
    return f"{user_id}:{hs_name}"


def _normalise_application_service(service: ApplicationService) -> ApplicationService:
    return replace(
        service,
        hs_token=secrets.token_hex(32),
        as_token=secrets.token_hex(32),
    )


def many_messages(senders: list[str], count: int) -> list[Event]:
    """Make `count` text messages, cycling through `senders`."""
    return [
        Event(
            type="m.room.message",
            sender=senders[i % len(senders)],
            content={"body": f"Hello world {i}", "msgtype": "m.text"},
        )
        for i in range(count)
    ]