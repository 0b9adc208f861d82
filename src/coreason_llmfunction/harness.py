# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_llmfunction

from typing import Any

from pydantic import ValidationError

from coreason_llmfunction.exceptions import ParseFault, ValidationFault
from coreason_llmfunction.executors import Executor
from coreason_llmfunction.llm import LLMClient
from coreason_llmfunction.models import FunctionSpec, Refinement, RuntimeFault, TestResult, TestRunSummary
from coreason_llmfunction.store import FunctionStore
from coreason_llmfunction.utils.hashing import canonical_json
from coreason_llmfunction.utils.logger import logger

REFINE_PROMPT = """
You are improving the prompt of a function that is executed by a language model.
The Input holds the current prompt under "prompt" and the results of running every example
under "results". For each result, "expected_output" is what the function must return and
"actual_output" is what it returned; "success" tells whether they matched.

Write a new prompt that makes future outputs match "expected_output" exactly, including key
names, value types and formatting. You may replace the old prompt entirely if that works better.
Describe the task generically; do not hard-code the example inputs.

Answer with a JSON object with the new prompt under "prompt" and, under "analysis", one entry
per failed result explaining what went wrong.
"""

EXAMPLE_REFINEMENT = {
    "prompt": "Add the numbers 'a' and 'b' from the input and return them as 'sum'.",
    "analysis": [
        {
            "input": {"a": 5, "b": 5},
            "expected_output": {"sum": 10},
            "actual_output": {"total": 10},
            "issue": "The result used the key 'total' instead of 'sum'.",
        }
    ],
}


def _normalize_numbers(value: Any) -> Any:
    # JSON has one number type: 5.0 and 5 are the same value, booleans are not numbers.
    if isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, dict):
        return {key: _normalize_numbers(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_normalize_numbers(item) for item in value]
    return value


def outputs_match(actual: Any, expected: Any) -> bool:
    """Structural JSON equality.

    Key order is ignored and integral floats equal their integers. Every other
    type difference is a mismatch.
    """
    return canonical_json(_normalize_numbers(actual)) == canonical_json(_normalize_numbers(expected))


class TestHarness:
    """Runs a function's examples and rewrites its prompt from the results."""

    __test__ = False

    def __init__(self, store: FunctionStore, llm: LLMClient):
        self.store = store
        self.llm = llm

    async def run_examples(self, function_id: str, executor: Executor) -> TestRunSummary:
        """Run every example through executor, in order, without stopping on failures.

        A RuntimeFault returned by the compiled path is recorded as a failed
        example. Any raised fault aborts the run.

        Raises:
            NotFoundFault: If function_id is unknown.
        """
        spec = await self.store.load(function_id)
        results: list[TestResult] = []

        for example in spec.examples:
            actual = await executor(spec, example.input)
            if isinstance(actual, RuntimeFault):
                results.append(
                    TestResult(
                        input=example.input,
                        expected_output=example.output,
                        actual_output=None,
                        success=False,
                        fault=actual,
                    )
                )
                continue
            results.append(
                TestResult(
                    input=example.input,
                    expected_output=example.output,
                    actual_output=actual,
                    success=outputs_match(actual, example.output),
                )
            )

        passed = sum(1 for result in results if result.success)
        summary = TestRunSummary(
            function_id=function_id,
            mode=executor.mode,
            total=len(results),
            passed=passed,
            failed=len(results) - passed,
            results=results,
        )
        logger.info(f"Tested {function_id[:12]} ({executor.mode}): {summary.passed}/{summary.total} passed")
        return summary

    async def refine(self, function_id: str, summary: TestRunSummary) -> FunctionSpec:
        """Ask the model for a better prompt and store it as a new function.

        The original function is left untouched; the new one keeps the same
        examples and records the original as its parent.

        Raises:
            NotFoundFault: If function_id is unknown.
            ValidationFault: If summary belongs to another function.
            ParseFault: If the reply has no usable new prompt.
        """
        if summary.function_id != function_id:
            raise ValidationFault("Test summary belongs to another function", summary.function_id)

        spec = await self.store.load(function_id)
        request = {
            "prompt": spec.prompt,
            "results": [result.model_dump(mode="json", exclude_none=True) for result in summary.results],
        }
        reply = await self.llm.single_message(REFINE_PROMPT, request, EXAMPLE_REFINEMENT)

        try:
            refinement = Refinement.model_validate(reply)
        except ValidationError as e:
            raise ParseFault("Refinement reply did not contain a prompt", raw=repr(reply)) from e

        new_prompt = refinement.prompt.strip()
        if not new_prompt or new_prompt == spec.prompt.strip():
            raise ParseFault("Refinement reply did not change the prompt", raw=refinement.prompt)

        refined = FunctionSpec(prompt=new_prompt, examples=spec.examples, parent=spec.identifier)
        await self.store.save(refined)
        logger.info(
            f"Refined {function_id[:12]} into {refined.identifier[:12]} "
            f"({len(refinement.analysis)} issues analysed)"
        )
        return refined
