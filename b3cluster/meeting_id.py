"""Meeting IDs made unique across frontends by combining them with the frontend key."""

from __future__ import annotations

import base64
import binascii
import json
import re
from dataclasses import dataclass

CHECK_KNOWN_VALUE = "b3scl"

_URLSAFE_B64 = re.compile(r"[A-Za-z0-9_-]*={0,2}")
_JSON_HTML_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def _marshal(values: list[str]) -> bytes:
    text = json.dumps(values, separators=(",", ":"), ensure_ascii=False)
    for char, escaped in _JSON_HTML_ESCAPES.items():
        text = text.replace(char, escaped)
    return text.encode("utf-8")


@dataclass
class FrontendKeyMeetingID:
    """A frontend key together with a meeting ID."""

    frontend_key: str
    meeting_id: str

    def encode_to_string(self) -> str:
        """Encode as URL-safe base64 of a JSON list."""
        data = _marshal([self.frontend_key, self.meeting_id, CHECK_KNOWN_VALUE])
        return base64.urlsafe_b64encode(data).decode("ascii")


def decode_frontend_key_meeting_id(encoded: str) -> FrontendKeyMeetingID | None:
    """Decode an encoded ID; None if it is not one."""
    if not _URLSAFE_B64.fullmatch(encoded):
        return None
    try:
        data = base64.urlsafe_b64decode(encoded)
        rep = json.loads(data.decode("utf-8"))
    except (binascii.Error, ValueError):
        return None
    if not isinstance(rep, list) or len(rep) != 3:
        return None
    if not all(isinstance(item, str) for item in rep):
        return None
    if rep[2] != CHECK_KNOWN_VALUE:
        return None
    return FrontendKeyMeetingID(frontend_key=rep[0], meeting_id=rep[1])


def maybe_decode_meeting_id(meeting_id: str) -> str:
    """Return the original meeting ID if encoded, otherwise the input unchanged."""
    decoded = decode_frontend_key_meeting_id(meeting_id)
    return meeting_id if decoded is None else decoded.meeting_id


def rewrite_meeting_id_param(meeting_id_param: str | None, frontend_key: str) -> str | None:
    """Encode every comma separated meeting ID with the frontend key."""
    if not meeting_id_param:
        return meeting_id_param
    return ",".join(
        FrontendKeyMeetingID(frontend_key, meeting_id).encode_to_string()
        for meeting_id in meeting_id_param.split(",")
    )