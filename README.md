# b3cluster

b3cluster holds the shared cluster state and the request helpers for a load
balancer that sits in front of a pool of BigBlueButton servers. It is a
library. It has no dependencies outside the standard library.

## What is in it

- **`b3cluster.query`**: the `Transaction` interface and the SQL builders.
  `SelectBuilder` and `DeleteBuilder` come from `new_query()`, `q()` and
  `new_delete()`. They are immutable, so every method returns a new builder.
  Predicates are plain strings with `?` placeholders, or `Eq`, `Like`, `Or`
  and `And`. `to_sql()` returns the SQL with PostgreSQL `$n` placeholders
  together with the argument list. `sql_safe_param` strips every character
  except letters, digits, `_` and `-`. `Transaction.query_row` raises
  `NoRowsError` when the query returns no rows.
- **`b3cluster.validation`**: `ValidationError` is an exception that collects
  error messages per field (`add(field, err)`).
- **`b3cluster.settings`**: `BackendSettings` (tags), `FrontendSettings`
  (required tags, default presentation, create default and override
  parameters) and `DefaultPresentationSettings`, with `to_dict` and
  `from_dict`.
- **State records**, read and written through a `Transaction`:
  - `b3cluster.frontend_state`: `Frontend`, `FrontendState`,
    `get_frontend_states`, `get_frontend_state`,
    `lookup_frontend_id_by_meeting_id`, `remove_stale_frontend_meetings`.
  - `b3cluster.meeting_state`: `Attendee`, `Meeting`, `MeetingState`,
    `get_meeting_states`, `get_meeting_state`, `get_meeting_state_by_id`,
    `delete_meeting_state_by_id`, `delete_meeting_state_by_internal_id`,
    `delete_orphan_meetings`, `update_backend_stat_counters`.
  - `b3cluster.backend_state`: `Backend`, `BackendState` (save, refresh,
    delete, agent heartbeat, `is_agent_alive`, `is_node_ready`, meeting
    creation, `validate`), `get_backend_states`, `get_backend_state`.
  - `b3cluster.recording_state`: `TextTrack`, `Recording`, `RecordingState`
    (save, frontend binding, text tracks, and deleting, publishing or
    unpublishing the files), `state_from_recording`,
    `query_recordings_by_frontend_key` and the lookup and delete functions.
- **`b3cluster.recordings_storage`**: `RecordingsStorage` builds the published
  and unpublished recording paths. `check()` tests that both locations can be
  written. `list_thumbnail_files` and `make_recording_preview` build a
  `Preview` of `Image`s from the thumbnails. `RecordingsStorage.from_env()`
  reads `B3SCALE_RECORDINGS_PUBLISHED_PATH` and
  `B3SCALE_RECORDINGS_UNPUBLISHED_PATH`. It raises
  `RecordingsStorageUnconfigured` if either one is unset.
- **`b3cluster.recording_filters`**: `filter_recording_states`,
  `filter_recording_meeting_ids`, `filter_recording_ids` and
  `filter_recording_meta` add the `getRecordings` search parameters to a
  query.
- **`b3cluster.routing`**: `filter_required_tags` keeps only the backends that
  carry every required tag. `sort_by_load` orders backends from least to most
  stressed.
- **`b3cluster.meeting_id`**: `FrontendKeyMeetingID`,
  `decode_frontend_key_meeting_id`, `maybe_decode_meeting_id` and
  `rewrite_meeting_id_param` make meeting IDs unique per frontend and restore
  the original IDs.
- **`b3cluster.create_params`**: `update_create_params` applies a frontend's
  override and default parameters to create request parameters in place.
  `merge_disabled_features` merges the `disabledFeatures` lists and removes
  duplicates.
- **`b3cluster.templates`**: `redirect`, `retry_join`, `meeting_not_found` and
  `default_presentation_body` return the rendered HTML pages and the XML body
  as bytes.

## Installation

```
pip install .
```

## Example

```python
from b3cluster.query import q
from b3cluster.meeting_id import FrontendKeyMeetingID, maybe_decode_meeting_id
from b3cluster.validation import ValidationError

sql, args = q().columns("meetings.id").from_("meetings").where("id = ?", "m1").to_sql()
# sql  == "SELECT meetings.id FROM meetings WHERE id = $1"
# args == ["m1"]

encoded = FrontendKeyMeetingID("frontend42", "room1").encode_to_string()
assert maybe_decode_meeting_id(encoded) == "room1"

errors = ValidationError()
errors.add("bbb.secret", "this field is required")
```

To use the state records, subclass `Transaction` and implement `query`
(return all rows as tuples) and `execute` (return the number of affected
rows) on top of your database driver.

## What it does not do

- It ships no database driver, connection pool or schema. `Transaction` is
  only an interface, and the SQL it produces expects PostgreSQL tables named
  `frontends`, `backends`, `meetings`, `frontend_meetings` and `recordings`.
- It runs no HTTP server. It handles no API requests itself and does not talk
  to BigBlueButton servers. It has no command queue, no metrics exporter and
  no command line program.

## Running the tests

```
pip install ".[test]"
pytest
```