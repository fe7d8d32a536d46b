"""Rendered HTML pages and XML bodies."""

from __future__ import annotations

from html import escape
from string import Template

_REDIRECT = Template("""<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <meta http-equiv="refresh" content="0; url=$url">
    <title>Redirecting</title>
  </head>
  <body>
    <p>Redirecting to <a href="$url">$url</a>.</p>
  </body>
</html>
""")

_RETRY_JOIN = Template("""<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <meta http-equiv="refresh" content="5; url=$url">
    <title>Waiting for the meeting</title>
  </head>
  <body>
    <h1>The meeting is being prepared</h1>
    <p>You will join automatically in a few seconds.</p>
    <p><a href="$url">Try again now</a></p>
  </body>
</html>
""")

_MEETING_NOT_FOUND = """<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <title>Meeting not found</title>
  </head>
  <body>
    <h1>Meeting not found</h1>
    <p>The meeting you are trying to join does not exist or has ended.</p>
  </body>
</html>
"""

_DEFAULT_PRESENTATION_BODY = Template("""<?xml version="1.0" encoding="UTF-8"?>
<modules>
  <module name="presentation">
    <document url="$url" filename="$filename" />
  </module>
</modules>
""")


def redirect(url: str) -> bytes:
    """Page that forwards the browser to url."""
    return _REDIRECT.substitute(url=escape(url)).encode("utf-8")


def retry_join(url: str) -> bytes:
    """Waiting page that retries the join at url."""
    return _RETRY_JOIN.substitute(url=escape(url)).encode("utf-8")


def meeting_not_found() -> bytes:
    """Human readable page for an unknown meeting."""
    return _MEETING_NOT_FOUND.encode("utf-8")


def default_presentation_body(url: str, filename: str) -> bytes:
    """XML create-request body that loads a presentation."""
    return _DEFAULT_PRESENTATION_BODY.substitute(
        url=escape(url), filename=escape(filename)
    ).encode("utf-8")