"""Shared Pydantic base models and utilities."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class VeriBase(BaseModel):
    """Base model with shared config for all VeriHealth wire schemas.

    Field names are snake_case in Python and camelCase on the wire, matching
    the JSON the mobile clients already send.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
