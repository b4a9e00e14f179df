from pydantic import BaseModel
from typing import Optional
from datetime import datetime

MAX_POST_LENGTH = 500
DEFAULT_CATEGORY = "General"
ALL_CATEGORIES = "All"


class Post(BaseModel):
    """
    A short post as shown in the feed.

    ``created_at``/``updated_at`` stay ``None`` until the provider resolves
    the server timestamp.
    """
    id: str
    content: str
    category: str = DEFAULT_CATEGORY
    author_id: Optional[str] = None
    author_email: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc_id: str, data: dict) -> "Post":
        return cls(
            id=doc_id,
            content=data.get("content") or "",
            category=data.get("category") or DEFAULT_CATEGORY,
            author_id=data.get("userId"),
            author_email=data.get("userEmail"),
            created_at=_timestamp(data.get("createdAt")),
            updated_at=_timestamp(data.get("updatedAt")),
        )


class Category(BaseModel):
    id: str
    name: str
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc_id: str, data: dict) -> "Category":
        return cls(
            id=doc_id,
            name=data.get("name") or "",
            created_by=data.get("createdBy"),
            created_at=_timestamp(data.get("createdAt")),
        )


class PostCreate(BaseModel):
    """
    Request body for creating a post. A missing category means the default one.
    """
    content: str
    category: Optional[str] = None


class CategoryCreate(BaseModel):
    name: str


def _timestamp(value) -> Optional[datetime]:
    return value if isinstance(value, datetime) else None
