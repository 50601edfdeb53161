"""Pydantic schemas for knowledge base articles."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class ArticleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    slug: str
    content: str
    category: str | None
    views: int
    file_path: str | None
    is_published: bool
    created_by: int | None
    created_at: datetime
    updated_at: datetime
