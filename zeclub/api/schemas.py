"""
zeclub.api.schemas — Shared request-body base
==============================================
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts camelCase on the wire, exposes snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
