"""Filters applied to recording queries from request parameters."""

from __future__ import annotations

from typing import Mapping

from .query import And, Eq, Like, Or, SelectBuilder, sql_safe_param

PARAM_MEETING_ID = "meetingID"
PARAM_RECORD_ID = "recordID"
PARAM_STATE = "state"
META_PREFIX = "meta_"
STATE_ANY = "any"


def _split_param(params: Mapping[str, str], name: str) -> list[str] | None:
    value = params.get(name)
    if not value:
        return None
    return value.split(",")


def _metadata(params: Mapping[str, str]) -> dict[str, str]:
    return {
        key[len(META_PREFIX):]: value
        for key, value in params.items()
        if key.startswith(META_PREFIX)
    }


def filter_recording_states(
    query: SelectBuilder, params: Mapping[str, str]
) -> SelectBuilder:
    """Restrict to the requested recording states; 'any' disables the filter."""
    states = _split_param(params, PARAM_STATE)
    if states is None or STATE_ANY in states:
        return query
    return query.where(Or(Eq({"recordings.state -> 'state'": s}) for s in states))


def filter_recording_meeting_ids(
    query: SelectBuilder, params: Mapping[str, str]
) -> SelectBuilder:
    """Restrict to the requested meeting IDs."""
    meeting_ids = _split_param(params, PARAM_MEETING_ID)
    if meeting_ids is None:
        return query
    return query.where(Or(Eq({"recordings.meeting_id": mid}) for mid in meeting_ids))


def filter_recording_ids(
    query: SelectBuilder, params: Mapping[str, str]
) -> SelectBuilder:
    """Restrict to record IDs starting with any of the requested ones."""
    record_ids = _split_param(params, PARAM_RECORD_ID)
    if record_ids is None:
        return query
    return query.where(Or(Like({"recordings.record_id": rid + "%"}) for rid in record_ids))


def filter_recording_meta(
    query: SelectBuilder, params: Mapping[str, str]
) -> SelectBuilder:
    """Restrict to recordings whose metadata matches every meta_ parameter."""
    meta = _metadata(params)
    if not meta:
        return query
    return query.where(
        And(
            Eq({f"recordings.state -> 'metadata' -> '{sql_safe_param(key)}'": value})
            for key, value in meta.items()
        )
    )