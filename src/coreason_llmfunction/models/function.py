# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_llmfunction

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, computed_field, field_validator

from coreason_llmfunction.exceptions import ValidationFault
from coreason_llmfunction.utils.hashing import content_hash


class Example(BaseModel):
    """One input/output pair. Both sides are JSON objects."""

    model_config = ConfigDict(frozen=True)

    input: dict[str, Any]
    output: dict[str, Any]


class FunctionSpec(BaseModel):
    """A function defined by a prompt and its examples.

    The identifier is a content hash over the prompt and the examples, so any
    edit produces a different function. ``parent`` records the function this
    one was refined from and does not take part in the identity.
    """

    model_config = ConfigDict(frozen=True)

    prompt: str
    examples: list[Example] = Field(min_length=1)
    parent: str | None = None

    @field_validator("prompt")
    @classmethod
    def _prompt_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("prompt must not be empty")
        return value

    @computed_field  # type: ignore[prop-decorator]
    @property
    def identifier(self) -> str:
        return content_hash(
            {
                "prompt": self.prompt,
                "examples": [example.model_dump() for example in self.examples],
            }
        )

    @classmethod
    def from_payload(cls, data: Any) -> "FunctionSpec":
        """Validate untrusted input, raising ValidationFault instead of pydantic errors."""
        if not isinstance(data, dict):
            raise ValidationFault("function definition must be a JSON object")
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ValidationFault(
                "Missing or invalid fields. A function needs a prompt and at least one example "
                "whose input and output are JSON objects",
                str(e),
            ) from e

    def with_examples(self, examples: list[Example]) -> "FunctionSpec":
        return FunctionSpec(prompt=self.prompt, examples=examples, parent=self.parent)

    def document(self) -> dict[str, Any]:
        """The persisted form: everything except the derived identifier."""
        return self.model_dump(exclude={"identifier"})


class GeneratedArtifact(BaseModel):
    """Generated source code owned by one function."""

    source_code: str
    owner_function_id: str
    created_from_fingerprint: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
