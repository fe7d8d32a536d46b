"""Shared state of backends: the meetings and load of one conference server."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from .frontend_state import Frontend, get_frontend_state
from .meeting_state import Meeting, MeetingState, update_backend_stat_counters
from .query import Eq, SelectBuilder, Transaction, q
from .settings import BackendSettings
from .validation import FIELD_REQUIRED, ValidationError

AGENT_HEARTBEAT_THRESHOLD = timedelta(seconds=5)


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


def _as_latency(value: Any) -> timedelta:
    if value is None:
        return timedelta(0)
    if isinstance(value, timedelta):
        return value
    # Integral values are durations in nanoseconds.
    return timedelta(microseconds=int(value) / 1000)


@dataclass
class Backend:
    """Address and credentials of a conference server."""

    host: str = ""
    secret: str = ""


@dataclass
class BackendState:
    """State of a backend shared across cluster instances."""

    id: str = ""
    node_state: str = "init"
    admin_state: str = "ready"
    agent_heartbeat: datetime | None = None
    last_error: str | None = None
    latency: timedelta = field(default_factory=timedelta)
    meetings_count: int = 0
    attendees_count: int = 0
    load_factor: float = 1.0
    backend: Backend | None = field(default_factory=Backend)
    settings: BackendSettings = field(default_factory=BackendSettings)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    synced_at: datetime | None = None

    def __post_init__(self) -> None:
        if not self.node_state:
            self.node_state = "init"
        if not self.admin_state:
            self.admin_state = "ready"
        if self.load_factor == 0:
            self.load_factor = 1.0

    def _require_backend(self) -> Backend:
        if self.backend is None:
            raise ValueError("backend state has no backend")
        return self.backend

    def refresh(self, tx: Transaction) -> None:
        """Reload the state from the store; raises LookupError if it is gone."""
        fresh = get_backend_state(tx, q().where(Eq({"id": self.id})))
        if fresh is None:
            raise LookupError(f"backend {self.id} is gone")
        self.__dict__.update(fresh.__dict__)

    def save(self, tx: Transaction) -> None:
        """Insert the state if it is new, update it otherwise, then reload it."""
        if self.created_at is None:
            self.id = self._insert(tx)
        else:
            self._update(tx)
        self.refresh(tx)

    def _insert(self, tx: Transaction) -> str:
        backend = self._require_backend()
        row = tx.query_row(
            """
            INSERT INTO backends (
                host, secret, node_state, admin_state, settings, load_factor
            )
            VALUES ($1, $2, $3, $4, $5, $6)
            RETURNING id""",
            backend.host,
            backend.secret,
            self.node_state,
            self.admin_state,
            json.dumps(self.settings.to_dict()),
            self.load_factor,
        )
        return row[0]

    def _update(self, tx: Transaction) -> None:
        backend = self._require_backend()
        tx.execute(
            """
            UPDATE backends
               SET node_state  = $2,
                   admin_state = $3,
                   last_error  = $4,
                   latency     = $5,
                   host        = $6,
                   secret      = $7,
                   settings    = $8,
                   load_factor = $9,
                   synced_at   = $10,
                   updated_at  = $11
             WHERE id = $1""",
            self.id,
            self.node_state,
            self.admin_state,
            self.last_error,
            self.latency,
            backend.host,
            backend.secret,
            json.dumps(self.settings.to_dict()),
            self.load_factor,
            self.synced_at,
            datetime.now(timezone.utc),
        )

    def delete(self, tx: Transaction) -> None:
        """Remove the backend and all of its meetings from the store."""
        tx.execute("DELETE FROM meetings WHERE backend_id = $1", self.id)
        tx.execute("DELETE FROM backends WHERE id = $1", self.id)

    def update_agent_heartbeat(self, tx: Transaction) -> None:
        """Set the agent heartbeat to now."""
        now = datetime.now(timezone.utc)
        tx.execute(
            "UPDATE backends SET agent_heartbeat = $2 WHERE id = $1", self.id, now
        )
        self.agent_heartbeat = now

    def is_agent_alive(self) -> bool:
        """True if the last heartbeat is at most five seconds old."""
        if self.agent_heartbeat is None:
            return False
        return datetime.now(timezone.utc) - self.agent_heartbeat <= AGENT_HEARTBEAT_THRESHOLD

    def is_node_ready(self) -> bool:
        """True if the agent is alive and the node reports ready."""
        return self.is_agent_alive() and self.node_state == "ready"

    def clear_meetings(self, tx: Transaction) -> None:
        """Remove all meetings of this backend."""
        tx.execute("DELETE FROM meetings WHERE backend_id = $1", self.id)

    def update_stat_counters(self, tx: Transaction) -> None:
        """Recount meetings and attendees of this backend."""
        update_backend_stat_counters(tx, self.id)

    def create_meeting_state(
        self, tx: Transaction, frontend: Frontend | None, meeting: Meeting
    ) -> MeetingState:
        """Create a meeting on this backend, attached to the frontend if given."""
        mstate = MeetingState(backend_id=self.id, meeting=meeting)
        mstate.mark_synced()
        if frontend is not None:
            fstate = get_frontend_state(tx, q().where("key = ?", frontend.key))
            if fstate is None:
                raise LookupError(f"frontend {frontend.key} is unknown")
            mstate.frontend_id = fstate.id
        mstate.save(tx)
        return mstate

    def create_or_update_meeting_state(self, tx: Transaction, meeting: Meeting) -> None:
        """Create the meeting on this backend or update its data, without a frontend."""
        mstate = MeetingState(backend_id=self.id, meeting=meeting)
        mstate.mark_synced()
        mstate.upsert(tx)

    def validate(self) -> None:
        """Check required fields; raises ValidationError."""
        err = ValidationError()
        if self.backend is None:
            err.add("bbb", FIELD_REQUIRED)
            raise err
        host = self.backend.host
        if host == "":
            err.add("bbb.host", FIELD_REQUIRED)
        if not host.startswith("http"):
            err.add("bbb.host", "should start with http(s)://")
        if self.backend.secret.strip() == "":
            err.add("bbb.secret", FIELD_REQUIRED)
        if len(err):
            raise err


def _backend_state_from_row(row: tuple) -> BackendState:
    return BackendState(
        id=row[0],
        node_state=row[1],
        admin_state=row[2],
        agent_heartbeat=_as_datetime(row[3]),
        last_error=row[4],
        latency=_as_latency(row[5]),
        meetings_count=int(row[6] or 0),
        attendees_count=int(row[7] or 0),
        load_factor=float(row[8]),
        backend=Backend(host=row[9], secret=row[10]),
        settings=BackendSettings.from_dict(_decode_json(row[11])),
        created_at=_as_datetime(row[12]),
        updated_at=_as_datetime(row[13]),
        synced_at=_as_datetime(row[14]),
    )


def get_backend_states(tx: Transaction, query: SelectBuilder) -> list[BackendState]:
    """All backend states matching the query."""
    sql, params = (
        query.from_("backends")
        .columns(
            "backends.id",
            "backends.node_state",
            "backends.admin_state",
            "backends.agent_heartbeat",
            "backends.last_error",
            "backends.latency",
            "backends.meetings_count",
            "backends.attendees_count",
            "backends.load_factor",
            "backends.host",
            "backends.secret",
            "backends.settings",
            "backends.created_at",
            "backends.updated_at",
            "backends.synced_at",
        )
        .to_sql()
    )
    return [_backend_state_from_row(row) for row in tx.query(sql, *params)]


def get_backend_state(tx: Transaction, query: SelectBuilder) -> BackendState | None:
    """The first backend state matching the query, or None."""
    states = get_backend_states(tx, query)
    return states[0] if states else None