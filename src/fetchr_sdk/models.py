"""Wire models exchanged between the client and the dispatcher."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Operation = Literal["create", "read", "update", "delete"]

OPERATIONS: tuple[str, ...] = ("create", "read", "update", "delete")


class FetchrModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class SuccessEnvelope(FetchrModel):
    data: Any = None
    meta: dict[str, Any] | None = None


class ErrorEnvelope(FetchrModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    message: str = "request failed"
    output: Any = None
    status_code: int = Field(default=500, alias="statusCode")
    meta: dict[str, Any] | None = None


class PostPayload(FetchrModel):
    resource: str | None = None
    operation: Operation
    params: dict[str, Any] = Field(default_factory=dict)
    body: Any = None
    config: dict[str, Any] = Field(default_factory=dict)
    context: dict[str, Any] = Field(default_factory=dict)
