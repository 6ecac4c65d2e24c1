"""Request models for the push API."""

from __future__ import annotations

from typing import Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class PostableAlert(BaseModel):
    """Alert event pushed by a collector."""

    model_config = ConfigDict(populate_by_name=True)

    labels: Dict[str, str]
    annotations: Dict[str, str] = {}
    state: Optional[str] = Field(default=None, validation_alias=AliasChoices("state", "status"))
    starts_at: Optional[str] = Field(default=None, alias="startsAt")
    ends_at: Optional[str] = Field(default=None, alias="endsAt")
    generator_url: str = Field(default="", alias="generatorURL")

    def to_event(self) -> dict:
        return {
            "labels": self.labels,
            "annotations": self.annotations,
            "state": self.state,
            "startsAt": self.starts_at,
            "endsAt": self.ends_at,
            "generatorURL": self.generator_url,
        }
