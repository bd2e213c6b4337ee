"""
Material schemas. Admin front end sends camelCase videoUrl, reads snake_case rows.
"""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class MaterialIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1)
    description: str | None = None
    content: str | None = None
    format: str | None = None
    category: str | None = None
    video_url: str | None = Field(default=None, alias="videoUrl")


class MaterialUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    content: str | None = None
    format: str | None = None
    category: str | None = None
    video_url: str | None = Field(default=None, alias="videoUrl")


class MaterialOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str | None
    content: str | None
    format: str | None
    category: str | None
    video_url: str | None
    created_at: datetime
    updated_at: datetime
