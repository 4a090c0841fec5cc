"""
Request / response models for the versions API.

The add-on speaks camelCase, so every model aliases its fields.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Camel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VersionOut(_Camel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    version_number: int
    commit_message: str
    preview_url: Optional[str] = None
    created_by: str
    created_at: datetime


class CommitIn(_Camel):
    commit_message: Optional[str] = None
    png_base64: Optional[str] = None
    created_by: Optional[str] = None


class RevertIn(_Camel):
    target_version: Optional[int] = Field(None, description="version number to revert to")
    created_by: Optional[str] = None


class VersionChanges(_Camel):
    preview_url_changed: bool
    commit_message_changed: bool


class VersionDiff(_Camel):
    version1: VersionOut
    version2: VersionOut
    changes: VersionChanges


class DeleteOut(_Camel):
    success: bool
    message: str
