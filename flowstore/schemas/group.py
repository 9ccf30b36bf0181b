from __future__ import annotations

from pydantic import BaseModel, Field


class GroupMemberIn(BaseModel):
    name: str | None = Field(default=None, max_length=255)
    email: str = Field(min_length=3, max_length=255)


class GroupWriteRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    color: str | None = Field(default=None, max_length=32)
    members: list[GroupMemberIn] = Field(default_factory=list)
    accept_any: bool = False
    team_id: str | None = Field(default=None, max_length=255)


class GroupMemberOut(BaseModel):
    name: str | None
    email: str


class GroupOut(BaseModel):
    id: str
    name: str
    color: str | None
    team_id: str | None
    accept_any: bool
    members: list[GroupMemberOut]
