"""Shared Pydantic schemas for common API elements."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys.

    Fields are declared in snake_case; clients send and receive camelCase.
    Both spellings are accepted on input.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class StatusResponse(BaseModel):
    """Plain acknowledgement body."""

    message: str = Field(..., description="Human-readable outcome")
