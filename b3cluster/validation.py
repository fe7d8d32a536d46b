"""Field validation errors."""

from __future__ import annotations

from typing import Iterator, Mapping

FIELD_REQUIRED = "this field is required"


class ValidationError(Exception):
    """Maps field names (as in the JSON form) to lists of error messages."""

    def __init__(self, fields: Mapping[str, list[str]] | None = None) -> None:
        self.fields: dict[str, list[str]] = {
            name: list(errors) for name, errors in (fields or {}).items()
        }
        super().__init__()

    def add(self, field: str, err: str) -> None:
        """Record an error for a field."""
        self.fields.setdefault(field, []).append(err)

    def __len__(self) -> int:
        return len(self.fields)

    def __iter__(self) -> Iterator[str]:
        return iter(self.fields)

    def __getitem__(self, field: str) -> list[str]:
        return self.fields[field]

    def __str__(self) -> str:
        errs = ", ".join(
            f"{name}[{' '.join(errors)}]" for name, errors in self.fields.items()
        )
        return "validation faild for fields: " + errs