"""Anonymisation mappings and the anonymised snapshot of an account."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

_logger = logging.getLogger(__name__)


def split_matrix_id(matrix_id: str) -> tuple[str, str]:
    """Split '@local:domain' into ('local', 'domain').

    Returns two empty strings if the identifier has no domain.
    """
    local, sep, domain = matrix_id.partition(":")
    if not sep:
        _logger.warning("Invalid matrix identifier: %s", matrix_id)
        return "", ""
    return local[1:], domain


@dataclass
class AnonMappings:
    """Mappings from real identifiers to anonymous ones.

    Anonymous identifiers come from incrementing counters rather than hashes,
    so they cannot be reversed by lookup.
    """

    users: dict[str, str] = field(default_factory=dict)
    users_count: int = 0
    devices: dict[str, str] = field(default_factory=dict)
    devices_count: int = 0
    servers: dict[str, str] = field(default_factory=dict)
    servers_count: int = 0
    rooms: dict[str, str] = field(default_factory=dict)
    anon_user_to_devices: dict[str, list[str]] = field(default_factory=dict)
    # If set, every user lives on this single server.
    single_server_name: str = ""

    def device(self, user_id: str, device_id: str) -> str:
        """Return the anonymous device ID for `device_id`, recording its owner."""
        anon_device = self.devices.get(device_id)
        if anon_device is not None:
            return anon_device
        anon_device = f"device-{self.devices_count:x}"
        self.devices[device_id] = anon_device
        self.devices_count += 1
        anon_user = self.user(user_id)
        owned = self.anon_user_to_devices.setdefault(anon_user, [])
        if anon_device not in owned:
            owned.append(anon_device)
        return anon_device

    def user(self, user_id: str) -> str:
        """Return the anonymous user ID, or '' if `user_id` is not a valid user ID."""
        if not user_id.startswith("@"):
            return ""
        anon_user = self.users.get(user_id)
        if anon_user is not None:
            return anon_user
        _, domain = split_matrix_id(user_id)
        if not domain:
            return ""
        anon_user = f"@anon-{self.users_count:x}:{self.server(domain)}"
        self.users[user_id] = anon_user
        self.users_count += 1
        return anon_user

    def server(self, real_server: str) -> str:
        """Return the anonymous server name for `real_server`."""
        if self.single_server_name:
            return self.single_server_name
        anon_server = self.servers.get(real_server)
        if anon_server is not None:
            return anon_server
        anon_server = f"server-{self.servers_count:x}"
        self.servers[real_server] = anon_server
        self.servers_count += 1
        return anon_server

    def room(self, room_id: str) -> str:
        """Return the anonymous room ID, or '' if the room is unknown."""
        return self.rooms.get(room_id, "")

    def set_room(self, room_id: str, anon_room_id: str) -> None:
        """Record the anonymous ID of a room."""
        self.rooms[room_id] = anon_room_id

    def device_map(self) -> dict[str, list[str]]:
        """Map each anonymous user to their anonymous device IDs."""
        return {user: list(devices) for user, devices in self.anon_user_to_devices.items()}


@dataclass
class AnonSnapshotRoom:
    """An anonymised room: its ID, creator, state and timeline events."""

    id: str = ""
    creator: str = ""
    state: list[dict[str, Any]] = field(default_factory=list)
    timeline: list[dict[str, Any]] = field(default_factory=list)

    def _to_json(self) -> dict[str, Any]:
        return {
            "ID": self.id,
            "Creator": self.creator,
            "State": list(self.state),
            "Timeline": list(self.timeline),
        }

    @classmethod
    def _from_json(cls, data: dict[str, Any]) -> AnonSnapshotRoom:
        return cls(
            id=data.get("ID") or "",
            creator=data.get("Creator") or "",
            state=list(data.get("State") or []),
            timeline=list(data.get("Timeline") or []),
        )


@dataclass
class Snapshot:
    """An anonymised snapshot of an account."""

    rooms: list[AnonSnapshotRoom] = field(default_factory=list)
    servers: list[str] = field(default_factory=list)
    account_data_dms: dict[str, list[str]] = field(default_factory=dict)
    devices: dict[str, list[str]] = field(default_factory=dict)
    # The anonymous user whose snapshot this is.
    user_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-serialisable form of this snapshot."""
        return {
            "Rooms": [room._to_json() for room in self.rooms],
            "Servers": list(self.servers),
            "AccountDataDMs": {k: list(v) for k, v in self.account_data_dms.items()},
            "Devices": {k: list(v) for k, v in self.devices.items()},
            "UserID": self.user_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Snapshot:
        """Build a snapshot from its JSON form."""
        if not isinstance(data, dict):
            raise ValueError("snapshot must be a JSON object")
        return cls(
            rooms=[AnonSnapshotRoom._from_json(r) for r in data.get("Rooms") or []],
            servers=list(data.get("Servers") or []),
            account_data_dms={
                k: list(v or []) for k, v in (data.get("AccountDataDMs") or {}).items()
            },
            devices={k: list(v or []) for k, v in (data.get("Devices") or {}).items()},
            user_id=data.get("UserID") or "",
        )