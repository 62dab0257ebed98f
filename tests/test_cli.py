import json

from complement.anon import AnonSnapshotRoom, Snapshot
from complement.cli import main
from complement.convert import convert_to_blueprint
from complement.redact import NO_ENCRYPTED_DEVICE

CREATOR = "@anon-0:hs1"


def _snapshot_dict():
    snap = Snapshot(
        rooms=[
            AnonSnapshotRoom(
                id="!0:hs1",
                creator=CREATOR,
                timeline=[
                    {
                        "content": {"creator": CREATOR, "room_version": "6"},
                        "sender": CREATOR,
                        "state_key": "",
                        "type": "m.room.create",
                    },
                    {
                        "content": {"body": "xx", "msgtype": "m.text"},
                        "sender": CREATOR,
                        "type": "m.room.message",
                    },
                ],
            )
        ],
        devices={CREATOR: [NO_ENCRYPTED_DEVICE]},
        user_id=CREATOR,
    )
    return snap.to_dict()


def _sync_data():
    create = {
        "type": "m.room.create",
        "state_key": "",
        "sender": "@alice:example.org",
        "room_id": "!abc:example.org",
        "content": {"creator": "@alice:example.org", "room_version": "6"},
    }
    msg = {
        "type": "m.room.message",
        "sender": "@alice:example.org",
        "room_id": "!abc:example.org",
        "content": {"body": "hello @alice:example.org", "msgtype": "m.text"},
    }
    return {
        "next_batch": "s1",
        "rooms": {
            "join": {
                "!abc:example.org": {
                    "state": {"events": [create]},
                    "timeline": {"events": [msg]},
                }
            }
        },
        "account_data": {"events": []},
    }


def test_from_anon_outputs_blueprint(tmp_path, capsys):
    path = tmp_path / "anon.json"
    data = _snapshot_dict()
    path.write_text(json.dumps(data), encoding="utf-8")
    assert main(["-from-anon", str(path)]) == 0
    out = json.loads(capsys.readouterr().out)
    assert list(out) == ["blueprint", "base_image_uri"]
    assert out["base_image_uri"] == "complement-dendrite:latest"
    assert out["blueprint"] == convert_to_blueprint(Snapshot.from_dict(data), "hs1").to_dict()


def test_double_dash_options_accepted(tmp_path, capsys):
    path = tmp_path / "anon.json"
    path.write_text(json.dumps(_snapshot_dict()), encoding="utf-8")
    assert main(["--from-anon", str(path)]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["blueprint"]["KeepAccessTokensForUsers"] == [CREATOR]


def test_usage_without_token_or_user(capsys):
    assert main([]) == 1
    err = capsys.readouterr().err
    assert "Usage" in err
    assert "  m.room.message\n" in err


def test_usage_when_user_missing(capsys):
    assert main(["-token", "token"]) == 1
    assert "Usage" in capsys.readouterr().err


def test_missing_anon_file_is_fatal(tmp_path, capsys):
    assert main(["-from-anon", str(tmp_path / "missing.json")]) == 1
    assert "FATAL" in capsys.readouterr().err


def test_invalid_anon_json_is_fatal(tmp_path, capsys):
    path = tmp_path / "anon.json"
    path.write_text("{not json", encoding="utf-8")
    assert main(["-from-anon", str(path)]) == 1
    assert "FATAL" in capsys.readouterr().err


def test_anon_only_from_cached_sync(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "sync_snapshot.json").write_text(json.dumps(_sync_data()), encoding="utf-8")
    assert main(["-token", "token", "-user", "@alice:example.org", "-anon-only"]) == 0
    text = capsys.readouterr().out
    snap = json.loads(text)
    assert "example.org" not in text
    assert snap["UserID"].startswith("@anon-")
    assert snap["UserID"].endswith(":hs1")
    assert snap["Devices"][snap["UserID"]] == [NO_ENCRYPTED_DEVICE]
    assert [room["ID"] for room in snap["Rooms"]] == ["!0:hs1"]
    assert snap["Rooms"][0]["Creator"] == snap["UserID"]


def test_blueprint_from_cached_sync(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "sync_snapshot.json").write_text(json.dumps(_sync_data()), encoding="utf-8")
    assert main(["-token", "token", "-user", "@alice:example.org"]) == 0
    out = json.loads(capsys.readouterr().out)
    blueprint = out["blueprint"]
    keep = blueprint["KeepAccessTokensForUsers"]
    assert len(keep) == 1 and keep[0].startswith("@anon-")
    assert blueprint["Name"].startswith("snapshot_anon")
    assert [hs["Name"] for hs in blueprint["Homeservers"]] == ["hs1"]
    rooms = blueprint["Homeservers"][0]["Rooms"]
    assert len(rooms) == 1
    assert rooms[0]["Creator"] == keep[0]