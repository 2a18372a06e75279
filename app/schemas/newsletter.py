"""Pydantic models for newsletter requests."""

from typing import Optional

from pydantic import BaseModel, Field


class SubscribeRequest(BaseModel):
    email: str
    language: Optional[str] = Field(None, description="de | en | ar | ka")
