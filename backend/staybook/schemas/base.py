"""Base schema utilities."""

from datetime import date

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Base schema with common configuration.

    ``from_attributes`` lets records be validated straight from ORM rows, so
    malformed rows are rejected at the repository boundary.
    """

    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True,
    )


def nights_between(start: date, end: date) -> int:
    """Number of nights in the half-open range ``[start, end)``."""
    return (end - start).days
