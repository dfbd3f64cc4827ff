"""Pydantic argument models for the tool requests an agent may send.

Params are validated here, before the approval prompt, so a malformed request
never reaches the operator or a tool collaborator.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class WriteFileArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")

    path: str = Field(..., min_length=1, description="The path to the file to write")
    content: str = Field(..., description="The content to write to the file")


class ReadFileArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")

    path: str = Field(..., min_length=1, description="The path to the file to read")


class ListDirectoryArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")

    path: str = Field(".", description="The directory to list (default: workspace root)")

    @field_validator("path", mode="before")
    @classmethod
    def _null_path(cls, value: Any) -> Any:
        return "." if value in (None, "") else value


class RunCommandArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")

    command: str = Field(..., min_length=1, description="Executable to run")
    args: list[str] = Field(default_factory=list, description="Command arguments")
    cwd: str | None = Field(None, description="Working directory (defaults to the workspace)")
    timeout: float | None = Field(None, gt=0, description="Timeout in seconds")

    @field_validator("args", mode="before")
    @classmethod
    def _null_args(cls, value: Any) -> Any:
        return [] if value is None else value
