"""The static blueprints that can be deployed by name."""

from __future__ import annotations

from functools import lru_cache

from .blueprints import (
    ApplicationService,
    Blueprint,
    Event,
    Homeserver,
    Room,
    User,
    many_messages,
    must_validate,
)

_E2EE_USER_COUNT = 500


def _join(state_key: str, sender: str) -> Event:
    return Event(
        type="m.room.member",
        state_key=state_key,
        sender=sender,
        content={"membership": "join"},
    )


def _message(body: str, sender: str) -> Event:
    return Event(
        type="m.room.message",
        sender=sender,
        content={"body": body, "msgtype": "m.text"},
    )


def _alice() -> User:
    return User(localpart="@alice", display_name="Alice")


def _bob() -> User:
    return User(localpart="@bob", display_name="Bob")


def memberships(count: int) -> list[Event]:
    """Join events for the users made by many_users."""
    return [_join(f"@alice_{i}:hs1", f"@alice_{i}") for i in range(count)]


def many_users(count: int) -> list[User]:
    """E2EE-capable users, each with a device and one-time keys."""
    return [
        User(
            localpart=f"@alice_{i}",
            display_name=f"Alice {i}",
            one_time_keys=50,
            device_id=f"ALICEDEVICE{i}",
        )
        for i in range(count)
    ]


def perf_many_rooms(users: list[str], count: int) -> list[Room]:
    """Rooms created in turn by each user, joined by the rest, with a few messages."""
    rooms = []
    for i in range(count):
        creator = users[i % len(users)]
        events = [_join(user, user) for user in users if user != creator]
        events.extend(many_messages(users, 20))
        rooms.append(
            Room(
                create_room={"preset": "public_chat"},
                creator=creator,
                events=events,
            )
        )
    return rooms


# A single user homeserver.
BLUEPRINT_ALICE = must_validate(
    Blueprint(name="alice", homeservers=[Homeserver(name="hs1", users=[_alice()])])
)

# A clean homeserver with no rooms or users.
BLUEPRINT_CLEAN_HS = must_validate(
    Blueprint(name="clean_hs", homeservers=[Homeserver(name="hs1")])
)

# Two homeservers with one user each, joined to the same room.
BLUEPRINT_FEDERATION_ONE_TO_ONE_ROOM = must_validate(
    Blueprint(
        name="federation_one_to_one_room",
        homeservers=[
            Homeserver(
                name="hs1",
                users=[_alice()],
                rooms=[
                    Room(
                        create_room={"preset": "public_chat"},
                        creator="@alice",
                        ref="alice_room",
                        events=[_message("Hello world", "@alice")],
                    )
                ],
            ),
            Homeserver(
                name="hs2",
                users=[_bob()],
                rooms=[
                    Room(
                        ref="alice_room",
                        events=[
                            _join("@bob:hs2", "@bob"),
                            _message("Hello world2", "@bob"),
                        ],
                    )
                ],
            ),
        ],
    )
)

# A two-user homeserver federating with a one-user homeserver.
BLUEPRINT_FEDERATION_TWO_LOCAL_ONE_REMOTE = must_validate(
    Blueprint(
        name="federation_two_local_one_remote",
        homeservers=[
            Homeserver(name="hs1", users=[_alice(), _bob()]),
            Homeserver(
                name="hs2",
                users=[User(localpart="@charlie", display_name="Charlie")],
            ),
        ],
    )
)

# A homeserver with an application service to interact with.
BLUEPRINT_HS_WITH_APPLICATION_SERVICE = must_validate(
    Blueprint(
        name="alice",
        homeservers=[
            Homeserver(
                name="hs1",
                users=[_alice()],
                application_services=[
                    ApplicationService(
                        id="my_as_id",
                        url="http://localhost:9000",
                        sender_localpart="the-bridge-user",
                        rate_limited=False,
                    )
                ],
            )
        ],
    )
)

# A homeserver with two users joined to the same room.
BLUEPRINT_ONE_TO_ONE_ROOM = must_validate(
    Blueprint(
        name="one_to_one_room",
        homeservers=[
            Homeserver(
                name="hs1",
                users=[_alice(), _bob()],
                rooms=[
                    Room(
                        create_room={"preset": "public_chat"},
                        creator="@alice",
                        events=[
                            _join("@bob:hs1", "@bob"),
                            _message("Hello world", "@bob"),
                        ],
                    )
                ],
            )
        ],
    )
)


@lru_cache(maxsize=None)
def _perf_many_messages() -> Blueprint:
    return must_validate(
        Blueprint(
            name="perf_many_messages",
            homeservers=[
                Homeserver(
                    name="hs1",
                    users=[_alice(), _bob()],
                    rooms=[
                        Room(
                            create_room={"preset": "public_chat"},
                            creator="@alice",
                            events=[_join("@bob:hs1", "@bob")]
                            + many_messages(["@alice", "@bob"], 7000),
                        )
                    ],
                )
            ],
        )
    )


@lru_cache(maxsize=None)
def _perf_many_rooms() -> Blueprint:
    return must_validate(
        Blueprint(
            name="perf_many_rooms",
            homeservers=[
                Homeserver(
                    name="hs1",
                    users=[_alice(), _bob()],
                    rooms=perf_many_rooms(["@alice", "@bob"], 400),
                )
            ],
        )
    )


@lru_cache(maxsize=None)
def _perf_e2ee_room() -> Blueprint:
    users = [
        User(
            localpart="@alice",
            display_name="Alice",
            one_time_keys=50,
            device_id="ALDJLSKJD",
        ),
        User(localpart="@bob", display_name="Bob", device_id="BOBDASLDKJ"),
    ] + many_users(_E2EE_USER_COUNT)
    events = [
        _join("@bob:hs1", "@bob"),
        _message("Hello world", "@bob"),
        Event(
            type="m.room.encryption",
            state_key="",
            sender="@alice",
            content={"algorithm": "m.megolm.v1.aes-sha2"},
        ),
    ] + memberships(_E2EE_USER_COUNT)
    return must_validate(
        Blueprint(
            name="perf_e2ee_room",
            homeservers=[
                Homeserver(
                    name="hs1",
                    users=users,
                    rooms=[
                        Room(
                            create_room={"preset": "public_chat"},
                            creator="@alice",
                            events=events,
                        )
                    ],
                )
            ],
        )
    )


def known_blueprints() -> dict[str, Blueprint]:
    """Map each static blueprint's name to the blueprint.

    Entries are added in a fixed order, so a later blueprint sharing a name
    with an earlier one takes its place.
    """
    ordered = [
        BLUEPRINT_CLEAN_HS,
        BLUEPRINT_ALICE,
        BLUEPRINT_FEDERATION_ONE_TO_ONE_ROOM,
        BLUEPRINT_FEDERATION_TWO_LOCAL_ONE_REMOTE,
        BLUEPRINT_HS_WITH_APPLICATION_SERVICE,
        BLUEPRINT_ONE_TO_ONE_ROOM,
        _perf_many_messages(),
        _perf_many_rooms(),
        _perf_e2ee_room(),
    ]
    return {bp.name: bp for bp in ordered}