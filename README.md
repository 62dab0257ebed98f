# complement

Tools for describing Matrix homeserver test deployments and for turning a
real account into an anonymised, replayable one:

- **Blueprints** (`complement.blueprints`) describe a whole deployment:
  homeservers, their users, rooms, events and application services.
- **Ready-made blueprints** (`complement.known`) cover the usual cases, from
  a clean server to performance scenarios with thousands of messages,
  hundreds of rooms or hundreds of end-to-end encryption capable users.
- **Configuration** (`complement.config`) read from `COMPLEMENT_*`
  environment variables.
- **An account snapshot tool** (`account-snapshot`) that takes a `/sync` of
  a real account, anonymises it and turns it into a blueprint request.

## Blueprints

A `Blueprint` holds a list of `Homeserver`s; each has `User`s, `Room`s and
`ApplicationService`s. Rooms hold `Event`s, users may hold `AccountData`.
`Blueprint.to_dict()` gives the JSON-serialisable form.

```python
from complement.blueprints import Blueprint, Homeserver, User, validate

bp = validate(
    Blueprint(
        name="example",
        homeservers=[Homeserver(name="hs1", users=[User(localpart="@alice")])],
    )
)
print(bp.to_dict())
```

`validate` returns a normalised copy and raises `BlueprintError` when the
blueprint is malformed. It requires a name, requires user localparts to
start with `@` and to carry no domain (and strips the `@`), adds the
homeserver's domain to room creators, event senders and `m.room.member`
state keys (rejecting IDs that name another server), requires every room to
have a ref or a creator, and gives application services fresh random
tokens. `must_validate` does the same, prefixing the error message with
`MustValidate:`.

`many_messages(senders, count)` builds `count` `m.room.message` events whose
senders cycle through `senders`.

## Ready-made blueprints

```python
from complement.known import BLUEPRINT_ALICE, known_blueprints

print(BLUEPRINT_ALICE.to_dict())
blueprints = known_blueprints()
print(sorted(blueprints))
```

The module defines `BLUEPRINT_ALICE`, `BLUEPRINT_CLEAN_HS`,
`BLUEPRINT_FEDERATION_ONE_TO_ONE_ROOM`,
`BLUEPRINT_FEDERATION_TWO_LOCAL_ONE_REMOTE`,
`BLUEPRINT_HS_WITH_APPLICATION_SERVICE` and `BLUEPRINT_ONE_TO_ONE_ROOM`.
The large performance blueprints (`perf_many_messages`, `perf_many_rooms`,
`perf_e2ee_room`) are built on first use by `known_blueprints()`, which maps
each blueprint's name to it. The application-service blueprint is also
named `alice`, and as it is added after `BLUEPRINT_ALICE` it is the one that
`known_blueprints()["alice"]` returns.

The helpers `many_users(count)`, `memberships(count)` and
`perf_many_rooms(users, count)` build the users, join events and rooms that
the performance blueprints are made of.

## Configuration

```python
import os

from complement.config import ComplementConfig

config = ComplementConfig.from_env(os.environ)
```

`from_env` reads `os.environ` when no mapping is given, and raises
`ValueError` if `COMPLEMENT_BASE_IMAGE` is not set.

| Variable | Meaning |
| --- | --- |
| `COMPLEMENT_BASE_IMAGE` | base image; required |
| `COMPLEMENT_BASE_IMAGE_ARGS` | space-separated extra arguments |
| `COMPLEMENT_DEBUG` | `1` turns on debug logging |
| `COMPLEMENT_VERSION_CHECK_ITERATIONS` | integer, defaults to 100 (also when not a valid integer) |
| `COMPLEMENT_KEEP_BLUEPRINTS` | space-separated blueprint names to keep |

`parse_env_with_default(environ, key, default)` is the integer parser used
for the version check setting.

## Taking an account snapshot

```
account-snapshot -token token -user @alice:example.com > output.json
```

Without both `-token` and `-user` the command prints its usage, including
the event types it handles, and exits with status 1.

It performs a `/sync` against the homeserver (by default
`https://matrix.org`, change it with `-url`), retrying up to 20 times and
showing download progress on standard error. The raw response is kept in
`sync_snapshot.json` in the current directory and is reused on later runs
instead of syncing again. Every user, server, room and message body is then
anonymised, and a blueprint request is written to standard output:

```json
{"blueprint": {...}, "base_image_uri": "complement-dendrite:latest"}
```

Options (each may also be written with two dashes):

- `-token` – the account's access token
- `-user` – the account's Matrix user ID, needed to map direct-message rooms
- `-url` – the homeserver URL
- `-anon-only` – write the anonymised snapshot instead of a blueprint
- `-from-anon FILE` – build a blueprint from an anonymised snapshot saved
  earlier with `-anon-only`

```
account-snapshot -token token -user @alice:example.com -anon-only > anon.json
account-snapshot -from-anon anon.json > blueprint.json
```

Failures are reported on standard error as `FATAL: ...` with exit status 1.

### How anonymisation works

`complement.anon.AnonMappings` replaces identifiers with counters
(`@anon-0:hs1`, `@anon-1:hs1`, `device-0`, …) rather than hashes, so they
cannot be looked up again; the command puts every user on the single server
`hs1`. Only event types listed in `complement.redact.REDACT_RULES` are kept,
and of those only the fields that have a `Redaction` rule. Text such as room
names, topics and message bodies has every character that is not whitespace
or punctuation replaced by `x` (`redact_text`); user IDs inside message
bodies are replaced by their anonymous form and left readable
(`body_replacer`). Encrypted events keep only their algorithm, ciphertext
length and an anonymous device ID.

The result is a `complement.anon.Snapshot`, which `to_dict` and `from_dict`
turn to and from JSON. `complement.convert.convert_to_blueprint` then builds
a one-homeserver blueprint from it: one user per device, the owner's
`m.direct` account data, and for each room its joins, invites, bans, other
state, power levels and timeline, dropping users who take no part in any
room. Tombstones, encrypted events, reactions and redactions are not
replayed.

The same steps are available from Python:

```python
from complement.anon import AnonMappings
from complement.convert import convert_to_blueprint
from complement.redact import redact
from complement.sync import load_sync_data

data = load_sync_data("https://matrix.example.com", "token", "sync_snapshot.json")
mappings = AnonMappings(single_server_name="hs1")
snapshot = redact(data, mappings)
snapshot.user_id = mappings.user("@alice:example.com")
blueprint = convert_to_blueprint(snapshot, "hs1")
```

`load_sync_data` raises `complement.sync.SyncError` when no attempt
succeeds.

## What this package does not do

It describes deployments but does not build, start or tear down
homeservers, and it has no server that accepts blueprint requests: the
blueprint request written by `account-snapshot` has to be handed to a
separate deployment tool. Apart from the `/sync` fetch used for snapshots,
it includes no client for making requests against a running homeserver.