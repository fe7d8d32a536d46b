"""Shared state of recordings and their files on disk."""

from __future__ import annotations

import json
import logging
import os
import shutil
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from .query import SelectBuilder, Transaction, q
from .recordings_storage import RecordingsStorage

log = logging.getLogger(__name__)


def _decode_json(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        return json.loads(value) if value else None
    return value


@dataclass
class TextTrack:
    """A caption or subtitle track of a recording."""

    href: str = ""
    kind: str = ""
    label: str = ""
    lang: str = ""
    source: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "href": self.href,
            "kind": self.kind,
            "label": self.label,
            "lang": self.lang,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TextTrack:
        return cls(
            href=data.get("href", ""),
            kind=data.get("kind", ""),
            label=data.get("label", ""),
            lang=data.get("lang", ""),
            source=data.get("source", ""),
        )


@dataclass
class Recording:
    """A recording as reported by a backend."""

    record_id: str = ""
    meeting_id: str = ""
    internal_meeting_id: str = ""
    name: str = ""
    published: bool = False
    state: str = ""
    metadata: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "meeting_id": self.meeting_id,
            "internal_meeting_id": self.internal_meeting_id,
            "name": self.name,
            "published": self.published,
            "state": self.state,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Recording:
        return cls(
            record_id=data.get("record_id", ""),
            meeting_id=data.get("meeting_id", ""),
            internal_meeting_id=data.get("internal_meeting_id", ""),
            name=data.get("name", ""),
            published=bool(data.get("published", False)),
            state=data.get("state", ""),
            metadata=dict(data.get("metadata") or {}),
        )


def _remove_all(path: str) -> None:
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    elif os.path.lexists(path):
        os.remove(path)


def _move_recording_files(src: str, dst: str) -> None:
    if os.path.exists(dst):
        return
    os.rename(src, dst)


@dataclass
class RecordingState:
    """A recording and its relation to a meeting and a frontend."""

    record_id: str = ""
    recording: Recording | None = None
    meeting_id: str = ""
    internal_meeting_id: str = ""
    frontend_id: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    synced_at: datetime | None = None

    def _require_recording(self) -> Recording:
        if self.recording is None:
            raise ValueError("recording state has no recording")
        return self.recording

    def exists(self, tx: Transaction) -> bool:
        """True if the recording is already in the store."""
        return get_recording_state_by_id(tx, self.record_id) is not None

    def save(self, tx: Transaction) -> None:
        """Insert the recording state or update an existing one."""
        recording = self._require_recording()
        self.updated_at = datetime.now(timezone.utc)
        tx.execute(
            """
            INSERT INTO recordings (
                record_id,
                meeting_id,
                internal_meeting_id,
                frontend_id,
                state,
                updated_at,
                synced_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7)
              ON CONFLICT ON CONSTRAINT recordings_pkey DO UPDATE
              SET meeting_id          = EXCLUDED.meeting_id,
                  internal_meeting_id = EXCLUDED.internal_meeting_id,
                  state               = EXCLUDED.state,
                  updated_at          = EXCLUDED.updated_at,
                  synced_at           = EXCLUDED.synced_at""",
            self.record_id,
            self.meeting_id,
            self.internal_meeting_id,
            self.frontend_id,
            json.dumps(recording.to_dict()),
            self.updated_at,
            self.synced_at,
        )

    def set_frontend_id(self, tx: Transaction, frontend_id: str) -> None:
        """Associate the recording with a frontend."""
        tx.execute(
            """
            UPDATE recordings
               SET frontend_id = $2,
                   updated_at  = $3
             WHERE record_id   = $1""",
            self.record_id,
            frontend_id,
            datetime.now(timezone.utc),
        )
        self.frontend_id = frontend_id

    def set_text_tracks(self, tx: Transaction, tracks: Iterable[TextTrack]) -> None:
        """Store the text tracks; the recording must already be in the store."""
        set_recording_text_tracks(tx, self.record_id, tracks)

    def delete(self, tx: Transaction) -> None:
        """Remove the recording from the store."""
        delete_recording_by_id(tx, self.record_id)

    def delete_files(self, storage: RecordingsStorage | None = None) -> None:
        """Remove the recording's files; the storage defaults to the environment."""
        recording = self._require_recording()
        storage = storage or RecordingsStorage.from_env()
        if recording.published:
            path = storage.published_recording_path(self.record_id)
        else:
            path = storage.unpublished_recording_path(self.record_id)
        _remove_all(path)

    def publish_files(self, storage: RecordingsStorage | None = None) -> None:
        """Move the files from the unpublished to the published location."""
        storage = storage or RecordingsStorage.from_env()
        _move_recording_files(
            storage.unpublished_recording_path(self.record_id),
            storage.published_recording_path(self.record_id),
        )

    def unpublish_files(self, storage: RecordingsStorage | None = None) -> None:
        """Move the files from the published to the unpublished location."""
        storage = storage or RecordingsStorage.from_env()
        _move_recording_files(
            storage.published_recording_path(self.record_id),
            storage.unpublished_recording_path(self.record_id),
        )


def state_from_recording(recording: Recording) -> RecordingState:
    """A new recording state for a recording, timestamped now."""
    now = datetime.now(timezone.utc)
    return RecordingState(
        record_id=recording.record_id,
        meeting_id=recording.meeting_id,
        internal_meeting_id=recording.internal_meeting_id,
        recording=recording,
        created_at=now,
        updated_at=now,
        synced_at=now,
    )


def _recording_state_from_row(row: tuple) -> RecordingState:
    data = _decode_json(row[4])
    return RecordingState(
        record_id=row[0],
        meeting_id=row[1],
        internal_meeting_id=row[2],
        frontend_id=row[3] or "",
        recording=Recording.from_dict(data) if data is not None else None,
    )


def get_recording_states(tx: Transaction, query: SelectBuilder) -> list[RecordingState]:
    """All recording states matching the query."""
    sql, params = (
        query.columns(
            "recordings.record_id",
            "recordings.meeting_id",
            "recordings.internal_meeting_id",
            "recordings.frontend_id",
            "recordings.state",
        )
        .from_("recordings")
        .to_sql()
    )
    log.debug("get_recording_states query: %s", sql)
    return [_recording_state_from_row(row) for row in tx.query(sql, *params)]


def get_recording_state(tx: Transaction, query: SelectBuilder) -> RecordingState | None:
    """The first recording state matching the query, or None."""
    states = get_recording_states(tx, query)
    return states[0] if states else None


def query_recordings_by_frontend_key(frontend_key: str) -> SelectBuilder:
    """A query for the recordings belonging to the frontend with this key."""
    return (
        q()
        .join("frontends ON frontends.id = recordings.frontend_id")
        .where("recordings.frontend_id IS NOT NULL")
        .where("frontends.key = ?", frontend_key)
    )


def get_recording_state_by_id(tx: Transaction, record_id: str) -> RecordingState | None:
    """The recording state with this record ID, or None."""
    return get_recording_state(tx, q().where("record_id = ?", record_id))


def delete_recording_by_id(tx: Transaction, record_id: str) -> None:
    """Remove a recording and, with it, its text tracks."""
    tx.execute("DELETE FROM recordings WHERE record_id = $1", record_id)


def get_recording_text_tracks(tx: Transaction, record_id: str) -> list[TextTrack]:
    """The text tracks of a recording."""
    row = tx.query_row(
        """
        SELECT text_track_states
          FROM recordings
         WHERE record_id = $1""",
        record_id,
    )
    data = _decode_json(row[0]) or []
    return [TextTrack.from_dict(track) for track in data]


def set_recording_text_tracks(
    tx: Transaction, record_id: str, tracks: Iterable[TextTrack]
) -> None:
    """Replace the text tracks of a recording."""
    tx.execute(
        """
        UPDATE recordings
           SET text_track_states = $2,
               updated_at        = $3
         WHERE record_id         = $1""",
        record_id,
        json.dumps([track.to_dict() for track in tracks]),
        datetime.now(timezone.utc),
    )