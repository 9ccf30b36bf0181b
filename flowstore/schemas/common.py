from __future__ import annotations

from pydantic import BaseModel


class CreatedResponse(BaseModel):
    id: str
    message: str


class MessageResponse(BaseModel):
    message: str
