"""Shared Pydantic base models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class StrideBase(BaseModel):
    """Base model with shared config for all API schemas."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class UpstreamModel(BaseModel):
    """Base for third-party payloads: unknown fields are dropped, not rejected."""

    model_config = ConfigDict(extra="ignore")
