"""Runtime settings for backends and frontends."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass
class BackendSettings:
    """Per-backend configuration, e.g. capability tags."""

    tags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"tags": list(self.tags)} if self.tags else {}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> BackendSettings:
        data = data or {}
        return cls(tags=list(data.get("tags") or []))


@dataclass
class DefaultPresentationSettings:
    """A presentation a frontend injects into create requests."""

    url: str = ""
    force: bool = False


@dataclass
class FrontendSettings:
    """All well known settings of a frontend."""

    required_tags: list[str] = field(default_factory=list)
    default_presentation: DefaultPresentationSettings | None = None
    create_default_params: dict[str, str] = field(default_factory=dict)
    create_override_params: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.required_tags:
            data["required_tags"] = list(self.required_tags)
        if self.default_presentation is not None:
            data["default_presentation"] = {
                "url": self.default_presentation.url,
                "force": self.default_presentation.force,
            }
        if self.create_default_params:
            data["create_default_params"] = dict(self.create_default_params)
        if self.create_override_params:
            data["create_override_params"] = dict(self.create_override_params)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> FrontendSettings:
        data = data or {}
        presentation = data.get("default_presentation")
        return cls(
            required_tags=list(data.get("required_tags") or []),
            default_presentation=(
                DefaultPresentationSettings(
                    url=presentation.get("url", ""),
                    force=bool(presentation.get("force", False)),
                )
                if presentation is not None
                else None
            ),
            create_default_params=dict(data.get("create_default_params") or {}),
            create_override_params=dict(data.get("create_override_params") or {}),
        )