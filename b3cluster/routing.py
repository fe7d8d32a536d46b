"""Backend selection steps: filtering by required tags and ordering by load."""

from __future__ import annotations

from typing import Iterable

from .backend_state import BackendState


def _has_tags(backend: BackendState, required: Iterable[str]) -> bool:
    tags = set(backend.settings.tags)
    return all(tag in tags for tag in required)


def _stress(backend: BackendState) -> float:
    return (backend.meetings_count + backend.attendees_count) * backend.load_factor


def filter_required_tags(
    backends: Iterable[BackendState], required: Iterable[str]
) -> list[BackendState]:
    """Keep only backends providing every required tag."""
    required = list(required)
    return [backend for backend in backends if _has_tags(backend, required)]


def sort_by_load(backends: list[BackendState]) -> list[BackendState]:
    """Order backends in place from least to most stressed and return them."""
    backends.sort(key=_stress)
    return backends