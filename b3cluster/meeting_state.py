"""Shared state of meetings and their relation to backends and frontends."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from .frontend_state import FrontendState, get_frontend_state
from .query import NoRowsError, SelectBuilder, Transaction, new_delete, q


def _decode_json(value: Any) -> dict:
    if value is None:
        return {}
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        return json.loads(value) if value else {}
    return dict(value)


def _as_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    result = value if isinstance(value, datetime) else datetime.fromisoformat(str(value))
    if result.tzinfo is None:
        result = result.replace(tzinfo=timezone.utc)
    return result


@dataclass
class Attendee:
    """A participant of a meeting."""

    user_id: str = ""
    full_name: str = ""
    has_video: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "UserID": self.user_id,
            "FullName": self.full_name,
            "HasVideo": self.has_video,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Attendee:
        return cls(
            user_id=data.get("UserID", ""),
            full_name=data.get("FullName", ""),
            has_video=bool(data.get("HasVideo", False)),
        )


@dataclass
class Meeting:
    """The meeting data as reported by a backend."""

    meeting_id: str = ""
    internal_meeting_id: str = ""
    meeting_name: str = ""
    running: bool = False
    attendees: list[Attendee] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "MeetingName": self.meeting_name,
            "MeetingID": self.meeting_id,
            "InternalMeetingID": self.internal_meeting_id,
            "Running": self.running,
            "Attendees": [a.to_dict() for a in self.attendees],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Meeting:
        return cls(
            meeting_id=data.get("MeetingID", ""),
            internal_meeting_id=data.get("InternalMeetingID", ""),
            meeting_name=data.get("MeetingName", ""),
            running=bool(data.get("Running", False)),
            attendees=[Attendee.from_dict(a) for a in data.get("Attendees") or []],
        )


@dataclass
class MeetingState:
    """A meeting and its relations to a backend and a frontend."""

    id: str = ""
    internal_id: str = ""
    meeting: Meeting | None = None
    frontend_id: str | None = None
    backend_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    synced_at: datetime | None = None
    _frontend: FrontendState | None = field(
        default=None, init=False, repr=False, compare=False
    )
    _backend: Any = field(default=None, init=False, repr=False, compare=False)

    def _require_meeting(self) -> Meeting:
        if self.meeting is None:
            raise ValueError("meeting state has no meeting")
        return self.meeting

    def _state_json(self) -> str:
        return json.dumps(self._require_meeting().to_dict())

    def get_backend_state(self, tx: Transaction):
        """The related backend state, loaded once; None without a backend."""
        if self.backend_id is None:
            return None
        if self._backend is not None:
            return self._backend
        from .backend_state import get_backend_state as _get_backend_state

        self._backend = _get_backend_state(tx, q().where("id = ?", self.backend_id))
        return self._backend

    def get_frontend_state(self, tx: Transaction) -> FrontendState | None:
        """The related frontend state, loaded once; None without a frontend."""
        if self.frontend_id is None:
            return None
        if self._frontend is not None:
            return self._frontend
        self._frontend = get_frontend_state(tx, q().where("id = ?", self.frontend_id))
        return self._frontend

    def refresh(self, tx: Transaction) -> None:
        """Reload the state from the store; raises LookupError if it is gone."""
        fresh = get_meeting_state(tx, q().where("id = ?", self.id))
        if fresh is None:
            raise LookupError(f"meeting {self.id} is gone")
        self.__dict__.update(fresh.__dict__)

    def save(self, tx: Transaction) -> None:
        """Insert or update the meeting state, then reload it."""
        if self.created_at is None:
            self.id = self._insert(tx)
        else:
            self._update(tx)
        if self.backend_id is not None:
            update_backend_stat_counters(tx, self.backend_id)
        self._update_frontend_meeting_mapping(tx)
        self.refresh(tx)

    def _insert(self, tx: Transaction) -> str:
        meeting = self._require_meeting()
        row = tx.query_row(
            """
            INSERT INTO meetings (
                id, internal_id, state, frontend_id, backend_id
            ) VALUES (
                $1, $2, $3, $4, $5
            ) RETURNING id""",
            meeting.meeting_id,
            meeting.internal_meeting_id,
            self._state_json(),
            self.frontend_id,
            self.backend_id,
        )
        self.id = row[0]
        return self.id

    def _update(self, tx: Transaction) -> None:
        meeting = self._require_meeting()
        self.updated_at = datetime.now(timezone.utc)
        tx.execute(
            """
            UPDATE meetings
               SET state       = $2,
                   internal_id = $3,
                   frontend_id = $4,
                   backend_id  = $5,
                   synced_at   = $6,
                   updated_at  = $7
             WHERE id = $1""",
            self.id,
            self._state_json(),
            meeting.internal_meeting_id,
            self.frontend_id,
            self.backend_id,
            self.synced_at,
            self.updated_at,
        )

    def _update_frontend_meeting_mapping(self, tx: Transaction) -> None:
        if self.frontend_id is None:
            return
        tx.execute(
            """
            INSERT INTO frontend_meetings (
                frontend_id, meeting_id
            ) VALUES (
                $1, $2
            ) ON CONFLICT (meeting_id) DO UPDATE
              SET seen_at = CURRENT_TIMESTAMP""",
            self.frontend_id,
            self.id,
        )

    def upsert(self, tx: Transaction) -> str:
        """Create the meeting state or update its meeting data and timestamps."""
        meeting = self._require_meeting()
        row = tx.query_row(
            """
            INSERT INTO meetings (
                id, internal_id, state, frontend_id, backend_id,
                updated_at, synced_at
            ) VALUES (
                $1, $2, $3, $4, $5, $6, $7
            )
            ON CONFLICT (id) DO UPDATE
               SET state      = EXCLUDED.state,
                   synced_at  = EXCLUDED.synced_at,
                   updated_at = EXCLUDED.updated_at
            RETURNING id""",
            meeting.meeting_id,
            meeting.internal_meeting_id,
            self._state_json(),
            self.frontend_id,
            self.backend_id,
            self.updated_at,
            self.synced_at,
        )
        self.id = row[0]
        return self.id

    def set_backend_id(self, tx: Transaction, backend_id: str) -> None:
        """Associate the meeting with a backend."""
        if self.backend_id == backend_id:
            return
        self.backend_id = backend_id
        tx.execute("UPDATE meetings SET backend_id = $2 WHERE id = $1", self.id, backend_id)

    def bind_frontend_id(self, tx: Transaction, frontend_id: str) -> None:
        """Associate an unclaimed meeting with a frontend; rebinding raises ValueError."""
        if self.frontend_id is not None:
            if self.frontend_id == frontend_id:
                return
            raise ValueError("meeting is already associated with different frontend")
        self.frontend_id = frontend_id
        tx.execute(
            "UPDATE meetings SET frontend_id = $2 WHERE id = $1", self.id, frontend_id
        )

    def is_stale(self, threshold: timedelta) -> bool:
        """True if the last sync lies further back than threshold."""
        if self.synced_at is None:
            return True
        return datetime.now(timezone.utc) - self.synced_at > threshold

    def mark_synced(self) -> None:
        """Set the sync timestamp to now."""
        self.synced_at = datetime.now(timezone.utc)


def _meeting_state_from_row(row: tuple) -> MeetingState:
    return MeetingState(
        id=row[0],
        internal_id=row[1],
        frontend_id=row[2],
        backend_id=row[3],
        meeting=Meeting.from_dict(_decode_json(row[4])),
        created_at=_as_datetime(row[5]),
        updated_at=_as_datetime(row[6]),
        synced_at=_as_datetime(row[7]),
    )


def get_meeting_states(tx: Transaction, query: SelectBuilder) -> list[MeetingState]:
    """All meeting states matching the query."""
    sql, params = (
        query.columns(
            "meetings.id",
            "meetings.internal_id",
            "meetings.frontend_id",
            "meetings.backend_id",
            "meetings.state",
            "meetings.created_at",
            "meetings.updated_at",
            "meetings.synced_at",
        )
        .from_("meetings")
        .to_sql()
    )
    return [_meeting_state_from_row(row) for row in tx.query(sql, *params)]


def get_meeting_state(tx: Transaction, query: SelectBuilder) -> MeetingState | None:
    """The first meeting state matching the query, or None."""
    states = get_meeting_states(tx, query)
    return states[0] if states else None


def get_meeting_state_by_id(tx: Transaction, meeting_id: str) -> MeetingState | None:
    """The meeting state with the given meeting ID, or None."""
    return get_meeting_state(tx, q().where("id = ?", meeting_id))


def _backend_id_of(tx: Transaction, column: str, value: str) -> str | None:
    try:
        row = tx.query_row(f"SELECT backend_id FROM meetings WHERE {column} = $1", value)
    except NoRowsError:
        return None
    return row[0]


def delete_meeting_state_by_id(tx: Transaction, meeting_id: str) -> None:
    """Remove a meeting state; succeeds even if there is none."""
    backend_id = _backend_id_of(tx, "id", meeting_id)
    tx.execute("DELETE FROM meetings WHERE id = $1", meeting_id)
    if backend_id is not None:
        update_backend_stat_counters(tx, backend_id)


def delete_meeting_state_by_internal_id(tx: Transaction, internal_id: str) -> None:
    """Remove a meeting state by internal ID; succeeds even if there is none."""
    backend_id = _backend_id_of(tx, "internal_id", internal_id)
    tx.execute("DELETE FROM meetings WHERE internal_id = $1", internal_id)
    if backend_id is not None:
        update_backend_stat_counters(tx, backend_id)


def delete_orphan_meetings(tx: Transaction, backend_id: str, keep: list[str]) -> int:
    """Delete meetings of a backend whose internal ID is not in keep; return the count."""
    query = new_delete().from_("meetings").where("backend_id = ?", backend_id)
    for internal_id in keep:
        query = query.where("internal_id <> ?", internal_id)
    sql, params = query.to_sql()
    return tx.execute(sql, *params)


def update_backend_stat_counters(tx: Transaction, backend_id: str) -> None:
    """Recount the meetings and attendees of a backend."""
    states = get_meeting_states(tx, q().where("meetings.backend_id = ?", backend_id))
    attendees = sum(len(s.meeting.attendees) for s in states if s.meeting is not None)
    tx.execute(
        """
        UPDATE backends
           SET meetings_count  = $2,
               attendees_count = $3
         WHERE backends.id = $1""",
        backend_id,
        len(states),
        attendees,
    )