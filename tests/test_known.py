from complement.known import (
    BLUEPRINT_HS_WITH_APPLICATION_SERVICE,
    known_blueprints,
    many_users,
    memberships,
    perf_many_rooms,
)


def test_known_blueprint_names():
    assert set(known_blueprints()) == {
        "clean_hs",
        "alice",
        "federation_one_to_one_room",
        "federation_two_local_one_remote",
        "one_to_one_room",
        "perf_many_messages",
        "perf_many_rooms",
        "perf_e2ee_room",
    }


def test_later_blueprint_with_same_name_wins():
    assert known_blueprints()["alice"] is BLUEPRINT_HS_WITH_APPLICATION_SERVICE
    service = known_blueprints()["alice"].homeservers[0].application_services[0]
    assert service.id == "my_as_id"
    assert service.sender_localpart == "the-bridge-user"
    assert len(service.hs_token) == 64


def test_alice_blueprint():
    users = known_blueprints()["alice"].homeservers[0].users
    assert [(u.localpart, u.display_name) for u in users] == [("alice", "Alice")]


def test_clean_hs_is_empty():
    hs = known_blueprints()["clean_hs"].homeservers[0]
    assert (hs.name, hs.users, hs.rooms) == ("hs1", [], [])


def test_federation_one_to_one_room():
    hs1, hs2 = known_blueprints()["federation_one_to_one_room"].homeservers
    assert hs1.rooms[0].creator == "@alice:hs1"
    assert hs1.rooms[0].ref == hs2.rooms[0].ref == "alice_room"
    assert [ev.sender for ev in hs2.rooms[0].events] == ["@bob:hs2", "@bob:hs2"]
    assert hs2.rooms[0].events[0].state_key == "@bob:hs2"


def test_federation_two_local_one_remote():
    names = [
        [u.localpart for u in hs.users]
        for hs in known_blueprints()["federation_two_local_one_remote"].homeservers
    ]
    assert names == [["alice", "bob"], ["charlie"]]


def test_one_to_one_room():
    room = known_blueprints()["one_to_one_room"].homeservers[0].rooms[0]
    assert room.creator == "@alice:hs1"
    assert [ev.type for ev in room.events] == ["m.room.member", "m.room.message"]
    assert room.events[1].content["body"] == "Hello world"


def test_perf_many_messages():
    room = known_blueprints()["perf_many_messages"].homeservers[0].rooms[0]
    messages = [ev for ev in room.events if ev.type == "m.room.message"]
    assert len(messages) == 7000
    assert {ev.sender for ev in messages} == {"@alice:hs1", "@bob:hs1"}


def test_perf_many_rooms_blueprint():
    rooms = known_blueprints()["perf_many_rooms"].homeservers[0].rooms
    assert len(rooms) == 400
    for room in rooms:
        joins = [ev for ev in room.events if ev.type == "m.room.member"]
        assert len(joins) == 1
        assert joins[0].state_key != room.creator
        assert joins[0].state_key.endswith(":hs1")


def test_perf_many_rooms_alternates_creators():
    rooms = perf_many_rooms(["@alice", "@bob"], 4)
    assert [r.creator for r in rooms] == ["@alice", "@bob", "@alice", "@bob"]
    for room in rooms:
        joins = [ev for ev in room.events if ev.type == "m.room.member"]
        messages = [ev for ev in room.events if ev.type == "m.room.message"]
        assert [ev.sender for ev in joins] != [room.creator]
        assert len(messages) == 20
        assert room.create_room == {"preset": "public_chat"}


def test_memberships_match_many_users():
    users = many_users(5)
    events = memberships(5)
    assert [ev.sender for ev in events] == [u.localpart for u in users]
    for ev in events:
        assert ev.state_key == f"{ev.sender}:hs1"
        assert ev.content == {"membership": "join"}


def test_many_users_have_devices_and_keys():
    users = many_users(10)
    assert len({u.device_id for u in users}) == 10
    assert all(u.one_time_keys == 50 for u in users)
    assert users[0].display_name == "Alice 0"


def test_perf_e2ee_room():
    hs = known_blueprints()["perf_e2ee_room"].homeservers[0]
    localparts = [u.localpart for u in hs.users]
    assert len(localparts) == len(set(localparts))
    assert all(u.device_id for u in hs.users)
    room = hs.rooms[0]
    enc = [ev for ev in room.events if ev.type == "m.room.encryption"]
    assert enc[0].content == {"algorithm": "m.megolm.v1.aes-sha2"}
    joined = {ev.state_key.split(":")[0][1:] for ev in room.events if ev.type == "m.room.member"}
    assert joined == set(localparts) - {"alice"}