"""Shared state of frontends and the frontend/meeting mapping."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .query import NoRowsError, SelectBuilder, Transaction
from .settings import FrontendSettings
from .validation import FIELD_REQUIRED, ValidationError


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
class Frontend:
    """Credentials a frontend uses to talk to the cluster."""

    key: str = ""
    secret: str = ""


@dataclass
class FrontendState:
    """Shared information about a frontend."""

    id: str = ""
    active: bool = True
    frontend: Frontend | None = field(default_factory=Frontend)
    settings: FrontendSettings = field(default_factory=FrontendSettings)
    account_ref: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def save(self, tx: Transaction) -> None:
        """Insert the state if it is new, update it otherwise."""
        if self.created_at is None:
            self._insert(tx)
        else:
            self._update(tx)

    def _insert(self, tx: Transaction) -> None:
        frontend = self.frontend or Frontend()
        row = tx.query_row(
            """
            INSERT INTO frontends (
                key, secret, active, settings, account_ref
            ) VALUES (
                $1, $2, $3, $4, $5
            )
            RETURNING id, created_at""",
            frontend.key,
            frontend.secret,
            self.active,
            json.dumps(self.settings.to_dict()),
            self.account_ref,
        )
        self.id = row[0]
        self.created_at = _as_datetime(row[1])

    def _update(self, tx: Transaction) -> None:
        frontend = self.frontend or Frontend()
        self.updated_at = datetime.now(timezone.utc)
        tx.execute(
            """
            UPDATE frontends
               SET key         = $2,
                   secret      = $3,
                   active      = $4,
                   settings    = $5,
                   account_ref = $6,
                   updated_at  = $7
             WHERE id = $1""",
            self.id,
            frontend.key,
            frontend.secret,
            self.active,
            json.dumps(self.settings.to_dict()),
            self.account_ref,
            self.updated_at,
        )

    def delete(self, tx: Transaction) -> None:
        """Remove the frontend from the store."""
        tx.execute("DELETE FROM frontends WHERE id = $1", self.id)

    def validate(self) -> None:
        """Check required fields; raises ValidationError."""
        err = ValidationError()
        if self.frontend is None:
            err.add("bbb", FIELD_REQUIRED)
            raise err
        self.frontend.key = self.frontend.key.strip()
        self.frontend.secret = self.frontend.secret.strip()
        if not self.frontend.key:
            err.add("bbb.key", FIELD_REQUIRED)
        if not self.frontend.secret:
            err.add("bbb.secret", FIELD_REQUIRED)
        if len(err):
            raise err


def _frontend_state_from_row(row: tuple) -> FrontendState:
    return FrontendState(
        id=row[0],
        frontend=Frontend(key=row[1], secret=row[2]),
        active=bool(row[3]),
        settings=FrontendSettings.from_dict(_decode_json(row[4])),
        account_ref=row[5],
        created_at=_as_datetime(row[6]),
        updated_at=_as_datetime(row[7]),
    )


def get_frontend_states(tx: Transaction, query: SelectBuilder) -> list[FrontendState]:
    """All frontend states matching the query."""
    sql, params = (
        query.columns(
            "frontends.id",
            "frontends.key",
            "frontends.secret",
            "frontends.active",
            "frontends.settings",
            "frontends.account_ref",
            "frontends.created_at",
            "frontends.updated_at",
        )
        .from_("frontends")
        .to_sql()
    )
    return [_frontend_state_from_row(row) for row in tx.query(sql, *params)]


def get_frontend_state(tx: Transaction, query: SelectBuilder) -> FrontendState | None:
    """The first frontend state matching the query, or None."""
    states = get_frontend_states(tx, query)
    return states[0] if states else None


def lookup_frontend_id_by_meeting_id(tx: Transaction, meeting_id: str) -> str | None:
    """The frontend ID a meeting ID was last seen with, or None."""
    try:
        row = tx.query_row(
            "SELECT frontend_id FROM frontend_meetings WHERE meeting_id = $1",
            meeting_id,
        )
    except NoRowsError:
        return None
    return row[0]


def remove_stale_frontend_meetings(tx: Transaction, threshold: datetime) -> None:
    """Forget frontend/meeting associations last seen before threshold."""
    tx.execute("DELETE FROM frontend_meetings WHERE seen_at < $1", threshold)