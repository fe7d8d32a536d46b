import re
import sqlite3
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from b3cluster.frontend_state import (
    Frontend,
    FrontendState,
    lookup_frontend_id_by_meeting_id,
)
from b3cluster.meeting_state import (
    Attendee,
    Meeting,
    MeetingState,
    delete_meeting_state_by_id,
    delete_meeting_state_by_internal_id,
    delete_orphan_meetings,
    get_meeting_state,
    get_meeting_state_by_id,
    get_meeting_states,
    update_backend_stat_counters,
)
from b3cluster.query import Transaction, q

SCHEMA = """
CREATE TABLE frontends (
    id TEXT PRIMARY KEY DEFAULT (lower(hex(randomblob(16)))),
    key TEXT NOT NULL UNIQUE,
    secret TEXT NOT NULL,
    active INTEGER NOT NULL DEFAULT 1,
    settings TEXT NOT NULL DEFAULT '{}',
    account_ref TEXT,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT
);
CREATE TABLE backends (
    id TEXT PRIMARY KEY DEFAULT (lower(hex(randomblob(16)))),
    host TEXT NOT NULL,
    meetings_count INTEGER NOT NULL DEFAULT 0,
    attendees_count INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE meetings (
    id TEXT PRIMARY KEY,
    internal_id TEXT NOT NULL UNIQUE,
    state TEXT NOT NULL,
    frontend_id TEXT,
    backend_id TEXT,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT,
    synced_at TEXT
);
CREATE TABLE frontend_meetings (
    frontend_id TEXT NOT NULL,
    meeting_id TEXT NOT NULL UNIQUE,
    seen_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);
"""


def _adapt(value):
    return value.isoformat() if isinstance(value, datetime) else value


class SQLiteTransaction(Transaction):
    def __init__(self, conn):
        self.conn = conn

    def _run(self, sql, args):
        return self.conn.execute(
            re.sub(r"\$(\d+)", r"?\1", sql), [_adapt(a) for a in args]
        )

    def query(self, sql, *args):
        return self._run(sql, args).fetchall()

    def execute(self, sql, *args):
        return self._run(sql, args).rowcount


@pytest.fixture
def tx():
    conn = sqlite3.connect(":memory:")
    conn.executescript(SCHEMA)
    yield SQLiteTransaction(conn)
    conn.close()


def insert_backend(tx):
    host = "testhost-" + uuid.uuid4().hex
    return tx.query_row("INSERT INTO backends (host) VALUES ($1) RETURNING id", host)[0]


def backend_counters(tx, backend_id):
    return tuple(
        tx.query_row(
            "SELECT meetings_count, attendees_count FROM backends WHERE id = $1",
            backend_id,
        )
    )


def meeting_state_factory(tx, backend_id=None, running=False, attendees=()):
    frontend = FrontendState(frontend=Frontend(key=uuid.uuid4().hex, secret="secret"))
    frontend.save(tx)
    if backend_id is None:
        backend_id = insert_backend(tx)
    meeting_id = uuid.uuid4().hex
    internal_id = uuid.uuid4().hex
    return MeetingState(
        id=meeting_id,
        internal_id=internal_id,
        frontend_id=frontend.id,
        backend_id=backend_id,
        meeting=Meeting(
            meeting_id=meeting_id,
            internal_meeting_id=internal_id,
            meeting_name="MyMeetingName-" + uuid.uuid4().hex,
            running=running,
            attendees=list(attendees),
        ),
    )


def test_meeting_dict_round_trip():
    meeting = Meeting(
        meeting_id="m1",
        internal_meeting_id="i1",
        meeting_name="name",
        running=True,
        attendees=[Attendee(user_id="u1", full_name="Jane", has_video=True)],
    )
    data = meeting.to_dict()
    assert data["Running"] is True
    assert data["MeetingID"] == "m1"
    assert Meeting.from_dict(data) == meeting


def test_get_meeting_states_running(tx):
    m1 = meeting_state_factory(tx, running=True)
    m1.save(tx)
    states = get_meeting_states(
        tx,
        q().where("id = ?", m1.id).where("json_extract(state, '$.Running') = ?", True),
    )
    assert len(states) == 1
    assert states[0].meeting.running is True


def test_meeting_state_save(tx):
    state = meeting_state_factory(tx)
    expected_id = state.id
    state.save(tx)
    assert state.id == expected_id
    assert state.created_at is not None
    assert get_meeting_state_by_id(tx, expected_id).internal_id == state.internal_id


def test_meeting_state_save_update(tx):
    state = meeting_state_factory(tx)
    state.save(tx)
    new_internal = uuid.uuid4().hex
    state.meeting = Meeting(meeting_name="bar", internal_meeting_id=new_internal)
    state.save(tx)
    assert state.meeting.meeting_name == "bar"
    assert state.internal_id == new_internal
    assert state.updated_at is not None


def test_meeting_state_query_update(tx):
    state = meeting_state_factory(tx)
    state.save(tx)
    state = get_meeting_state(tx, q().where("id = ?", state.id))
    state.meeting = Meeting(meeting_name="bar", internal_meeting_id=uuid.uuid4().hex)
    state.save(tx)
    assert get_meeting_state_by_id(tx, state.id).meeting.meeting_name == "bar"


def test_meeting_state_is_stale(tx):
    state = meeting_state_factory(tx)
    state.save(tx)

    state.synced_at = datetime.now(timezone.utc)
    state.save(tx)
    assert not state.is_stale(timedelta(minutes=1))

    state.synced_at = datetime.now(timezone.utc) - timedelta(minutes=10)
    state.save(tx)
    assert state.is_stale(timedelta(minutes=1))


def test_mark_synced():
    state = MeetingState()
    assert state.is_stale(timedelta(minutes=1))
    state.mark_synced()
    assert not state.is_stale(timedelta(minutes=1))


def test_delete_meeting_state_by_internal_id(tx):
    state = meeting_state_factory(tx)
    state.save(tx)
    assert backend_counters(tx, state.backend_id) == (1, 0)
    delete_meeting_state_by_internal_id(tx, state.internal_id)
    assert get_meeting_state_by_id(tx, state.id) is None
    assert backend_counters(tx, state.backend_id) == (0, 0)


def test_delete_meeting_state_by_id(tx):
    state = meeting_state_factory(tx)
    state.save(tx)
    delete_meeting_state_by_id(tx, state.id)
    assert get_meeting_state_by_id(tx, state.id) is None
    assert backend_counters(tx, state.backend_id) == (0, 0)


def test_delete_missing_meeting_state(tx):
    delete_meeting_state_by_id(tx, "unknown")
    assert get_meeting_states(tx, q()) == []


def test_delete_orphan_meetings(tx):
    m1 = meeting_state_factory(tx)
    backend_id = m1.backend_id
    m1.save(tx)
    m2 = meeting_state_factory(tx, backend_id=backend_id)
    m2.save(tx)
    m3 = meeting_state_factory(tx, backend_id=backend_id)
    m2.save(tx)

    unrelated = meeting_state_factory(tx)
    unrelated.save(tx)

    count = delete_orphan_meetings(tx, m1.backend_id, [m1.internal_id, m3.internal_id])
    assert count == 1
    assert get_meeting_state(tx, q().where("meetings.id = ?", unrelated.id)) is not None
    assert get_meeting_state_by_id(tx, m2.id) is None
    assert get_meeting_state_by_id(tx, m1.id).id == m1.id


def test_meeting_state_upsert(tx):
    m0 = meeting_state_factory(tx)
    m0.save(tx)

    m1 = meeting_state_factory(tx)
    meeting_id = m1.upsert(tx)
    assert meeting_id == m1.meeting.meeting_id
    assert m1.updated_at is None
    assert m1.meeting.running is False

    m1.meeting.running = True
    m1.updated_at = datetime.now(timezone.utc)
    meeting_id = m1.upsert(tx)

    m2 = get_meeting_state(tx, q().where("meetings.id = ?", meeting_id))
    assert m2.meeting.running is True
    assert m2.updated_at is not None

    m0.refresh(tx)
    assert m0.meeting.running is False


def test_frontend_meeting_mapping(tx):
    state = meeting_state_factory(tx)
    assert lookup_frontend_id_by_meeting_id(tx, state.id) is None
    state.save(tx)
    assert lookup_frontend_id_by_meeting_id(tx, state.id) == state.frontend_id
    state.save(tx)
    rows = tx.query(
        "SELECT frontend_id FROM frontend_meetings WHERE meeting_id = $1", state.id
    )
    assert rows == [(state.frontend_id,)]


def test_stat_counters_count_attendees(tx):
    attendees = [Attendee(user_id="a"), Attendee(user_id="b", has_video=True)]
    state = meeting_state_factory(tx, attendees=attendees)
    state.save(tx)
    other = meeting_state_factory(tx, backend_id=state.backend_id)
    other.save(tx)
    assert backend_counters(tx, state.backend_id) == (2, 2)

    tx.execute("DELETE FROM meetings WHERE id = $1", other.id)
    update_backend_stat_counters(tx, state.backend_id)
    assert backend_counters(tx, state.backend_id) == (1, 2)


def test_set_backend_id(tx):
    state = meeting_state_factory(tx)
    state.save(tx)
    new_backend = insert_backend(tx)
    state.set_backend_id(tx, new_backend)
    assert state.backend_id == new_backend
    assert get_meeting_state_by_id(tx, state.id).backend_id == new_backend


def test_bind_frontend_id(tx):
    state = meeting_state_factory(tx)
    state.frontend_id = None
    state.save(tx)
    state.bind_frontend_id(tx, "fe1")
    assert get_meeting_state_by_id(tx, state.id).frontend_id == "fe1"
    state.bind_frontend_id(tx, "fe1")
    with pytest.raises(ValueError):
        state.bind_frontend_id(tx, "fe2")
    assert state.frontend_id == "fe1"


def test_refresh_missing_raises(tx):
    state = meeting_state_factory(tx)
    state.save(tx)
    tx.execute("DELETE FROM meetings WHERE id = $1", state.id)
    with pytest.raises(LookupError):
        state.refresh(tx)


def test_get_frontend_state(tx):
    state = meeting_state_factory(tx)
    state.save(tx)
    frontend = state.get_frontend_state(tx)
    assert frontend.id == state.frontend_id
    assert state.get_frontend_state(tx) is frontend


def test_get_frontend_state_without_frontend(tx):
    assert MeetingState().get_frontend_state(tx) is None


def test_get_backend_state_without_backend(tx):
    assert MeetingState().get_backend_state(tx) is None


def test_get_backend_state_cached(tx):
    state = MeetingState(backend_id="b1")
    cached = object()
    state._backend = cached
    assert state.get_backend_state(tx) is cached


def test_save_without_meeting_raises(tx):
    with pytest.raises(ValueError):
        MeetingState(id="m").save(tx)