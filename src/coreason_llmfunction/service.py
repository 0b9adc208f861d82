# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_llmfunction

from typing import Any, Literal

import httpx
from pydantic import ValidationError

from coreason_llmfunction.client import InvocationClient
from coreason_llmfunction.config import FunctionConfig
from coreason_llmfunction.exceptions import ValidationFault
from coreason_llmfunction.executors import CompiledExecutor, DirectExecutor, Executor
from coreason_llmfunction.generator import CodeGenerator
from coreason_llmfunction.harness import TestHarness
from coreason_llmfunction.inference import DirectInferenceClient
from coreason_llmfunction.llm import LLMClient
from coreason_llmfunction.manager import SandboxManager
from coreason_llmfunction.models import Example, FunctionSpec, RuntimeFault, TestRunSummary
from coreason_llmfunction.runtime import IsolationBackend
from coreason_llmfunction.store import FunctionStore
from coreason_llmfunction.utils.logger import logger

Mode = Literal["direct", "compiled"]


def _example(data: Any) -> Example:
    try:
        return Example.model_validate(data)
    except ValidationError as e:
        raise ValidationFault("An example needs an input and an output that are JSON objects", str(e)) from e


def _input(data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ValidationFault("Function input must be a JSON object", repr(data)[:200])
    return data


class LLMFunctionService:
    """Async service behind the function HTTP surface (The Core).

    Wires the store, the model clients, the sandbox manager and the test
    harness together and exposes one coroutine per route.
    """

    def __init__(
        self,
        config: FunctionConfig | None = None,
        backend: IsolationBackend | None = None,
        llm_client: httpx.AsyncClient | None = None,
        sandbox_client: httpx.AsyncClient | None = None,
    ):
        """Initializes the LLMFunctionService.

        Args:
            config: Configuration. If not provided, defaults and environment are used.
            backend: Optional isolation backend overriding ``config.runtime``.
            llm_client: Optional httpx.AsyncClient for model calls.
            sandbox_client: Optional httpx.AsyncClient for sandbox calls and health probes.
        """
        self.config = config or FunctionConfig()
        self.store = FunctionStore(self.config.state_dir)
        self.llm = LLMClient(self.config, llm_client)
        self.invocation = InvocationClient(self.config.sandbox_timeout, sandbox_client)
        self.manager = SandboxManager(self.config, backend=backend, client=sandbox_client)
        self.harness = TestHarness(self.store, self.llm)
        self.direct = DirectExecutor(DirectInferenceClient(self.llm))
        self.compiled = CompiledExecutor(CodeGenerator(self.llm), self.manager, self.invocation, self.store)
        self._summaries: dict[str, TestRunSummary] = {}

    async def __aenter__(self) -> "LLMFunctionService":
        await self.store.initialize()
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.close()

    async def close(self) -> None:
        # Local processes cannot be re-attached after a restart, containers can
        await self.manager.shutdown(teardown=self.config.runtime == "subprocess")
        await self.llm.aclose()
        await self.invocation.aclose()

    def _executor(self, mode: Mode) -> Executor:
        if mode == "direct":
            return self.direct
        if mode == "compiled":
            return self.compiled
        raise ValidationFault(f"Unknown execution mode: {mode}")

    async def create_function(self, data: Any) -> FunctionSpec:
        spec = FunctionSpec.from_payload(data)
        await self.store.save(spec)
        logger.info(f"Created function {spec.identifier[:12]}")
        return spec

    async def get_function(self, identifier: str) -> FunctionSpec:
        return await self.store.load(identifier)

    async def list_functions(self) -> list[dict[str, Any]]:
        return await self.store.list_functions()

    async def remove_function(self, identifier: str) -> None:
        """Remove a function with its generated code, sandbox and cached test results."""
        await self.store.load(identifier)
        await self.manager.remove(identifier)
        await self.store.delete(identifier)
        self._summaries.pop(identifier, None)
        logger.info(f"Removed function {identifier[:12]}")

    async def run(self, identifier: str, input_data: Any) -> Any:
        """Execute a function by direct inference."""
        spec = await self.store.load(identifier)
        return await self.direct(spec, _input(input_data))

    async def run_with_code(self, identifier: str, input_data: Any) -> Any | RuntimeFault:
        """Execute a function's generated code in its sandbox."""
        spec = await self.store.load(identifier)
        return await self.compiled(spec, _input(input_data))

    async def get_code(self, identifier: str) -> str:
        """Return the generated code for a function, generating it if needed."""
        spec = await self.store.load(identifier)
        return await self.compiled.source_for(spec)

    async def test(self, identifier: str, mode: Mode = "direct") -> TestRunSummary:
        summary = await self.harness.run_examples(identifier, self._executor(mode))
        self._summaries[identifier] = summary
        return summary

    def last_summary(self, identifier: str) -> TestRunSummary | None:
        return self._summaries.get(identifier)

    async def improve(self, identifier: str, mode: Mode = "direct") -> FunctionSpec:
        """Refine a function's prompt from its latest test results.

        The examples are run first when there are no results for the function yet.
        """
        summary = self._summaries.get(identifier) or await self.test(identifier, mode)
        return await self.harness.refine(identifier, summary)

    async def add_example(self, identifier: str, example: Any) -> FunctionSpec:
        spec = await self.store.load(identifier)
        return await self._replace(spec, [*spec.examples, _example(example)])

    async def remove_example(self, identifier: str, index: int) -> FunctionSpec:
        spec = await self.store.load(identifier)
        if not 0 <= index < len(spec.examples):
            raise ValidationFault(f"No example at index {index}")
        return await self._replace(spec, [e for i, e in enumerate(spec.examples) if i != index])

    async def update_example(self, identifier: str, index: int, example: Any) -> FunctionSpec:
        spec = await self.store.load(identifier)
        if not 0 <= index < len(spec.examples):
            raise ValidationFault(f"No example at index {index}")
        examples = list(spec.examples)
        examples[index] = _example(example)
        return await self._replace(spec, examples)

    async def _replace(self, spec: FunctionSpec, examples: list[Example]) -> FunctionSpec:
        """Store spec with new examples under its new identity and drop the old one."""
        try:
            updated = spec.with_examples(examples)
        except ValidationError as e:
            raise ValidationFault("A function needs at least one example", str(e)) from e

        if updated.identifier == spec.identifier:
            return spec

        await self.store.save(updated)
        await self.remove_function(spec.identifier)
        logger.info(f"Function {spec.identifier[:12]} replaced by {updated.identifier[:12]}")
        return updated
