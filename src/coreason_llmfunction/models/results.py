# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_llmfunction

"""Data models for test runs and prompt refinement."""

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

from coreason_llmfunction.models.sandbox import RuntimeFault


class TestResult(BaseModel):
    """Outcome of running one example.

    Attributes:
        input: The example input.
        expected_output: The example output.
        actual_output: What the executor returned (None when it faulted).
        success: True when actual and expected are structurally equal.
        fault: The runtime fault raised by the artifact, if any.
    """

    __test__ = False

    input: dict[str, Any]
    expected_output: dict[str, Any]
    actual_output: Any = None
    success: bool
    fault: RuntimeFault | None = None


class TestRunSummary(BaseModel):
    __test__ = False

    function_id: str
    mode: Literal["direct", "compiled"] = "direct"
    total: int
    passed: int
    failed: int
    results: list[TestResult]
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def _counts_match(self) -> "TestRunSummary":
        if self.total != len(self.results) or self.passed + self.failed != self.total:
            raise ValueError("summary counts do not match results")
        return self


class RefinementAnalysis(BaseModel):
    input: Any = None
    expected_output: Any = None
    actual_output: Any = None
    issue: str = ""


class Refinement(BaseModel):
    """The model's reply to a refinement request."""

    prompt: str
    analysis: list[RefinementAnalysis | str] = Field(default_factory=list)
