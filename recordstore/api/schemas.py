from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _Body(BaseModel):
    # Collections declare explicit fields; anything else is rejected.
    model_config = ConfigDict(extra="forbid")


class UserIn(_Body):
    name: str = Field(min_length=1, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)


class UserPatch(_Body):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)


class PostIn(_Body):
    title: str = Field(min_length=1, max_length=255)
    content: Optional[str] = None
    userId: int = Field(ge=1)


class PostPatch(_Body):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    content: Optional[str] = None
    userId: Optional[int] = Field(default=None, ge=1)


class UserPostIn(_Body):
    """A post created under /users/{id}/posts; the author comes from the path."""

    title: str = Field(min_length=1, max_length=255)
    content: Optional[str] = None
