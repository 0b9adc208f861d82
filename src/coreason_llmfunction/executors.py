# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_llmfunction

"""The two execution paths a function can take."""

import asyncio
from typing import Any, Literal, Protocol

from coreason_llmfunction.client import InvocationClient
from coreason_llmfunction.exceptions import CrashFault
from coreason_llmfunction.generator import CodeGenerator
from coreason_llmfunction.inference import DirectInferenceClient
from coreason_llmfunction.manager import SandboxManager
from coreason_llmfunction.models import FunctionSpec, GeneratedArtifact, RuntimeFault
from coreason_llmfunction.store import FunctionStore
from coreason_llmfunction.utils.hashing import fingerprint
from coreason_llmfunction.utils.logger import logger


class Executor(Protocol):
    mode: Literal["direct", "compiled"]

    async def __call__(self, spec: FunctionSpec, input_data: dict[str, Any]) -> Any | RuntimeFault: ...


class DirectExecutor:
    """Interpreted path: the model answers every call."""

    mode: Literal["direct", "compiled"] = "direct"

    def __init__(self, inference: DirectInferenceClient):
        self.inference = inference

    async def __call__(self, spec: FunctionSpec, input_data: dict[str, Any]) -> Any:
        return await self.inference.infer(spec.prompt, input_data, spec.examples[0].output)


class CompiledExecutor:
    """Compiled path: code is generated once per function and run in its sandbox."""

    mode: Literal["direct", "compiled"] = "compiled"

    def __init__(
        self,
        generator: CodeGenerator,
        manager: SandboxManager,
        client: InvocationClient,
        store: FunctionStore,
    ):
        self.generator = generator
        self.manager = manager
        self.client = client
        self.store = store
        self._locks: dict[str, asyncio.Lock] = {}

    async def source_for(self, spec: FunctionSpec) -> str:
        """Return the stored code for spec, generating and storing it on first use."""
        function_id = spec.identifier
        lock = self._locks.setdefault(function_id, asyncio.Lock())
        async with lock:
            artifact = await self.store.load_artifact(function_id)
            if artifact is not None and fingerprint(artifact.source_code) == artifact.created_from_fingerprint:
                return artifact.source_code

            logger.info(f"Generating code for function {function_id[:12]}")
            source_code = await self.generator.generate(spec.prompt, spec.examples)
            await self.store.save_artifact(
                GeneratedArtifact(
                    source_code=source_code,
                    owner_function_id=function_id,
                    created_from_fingerprint=fingerprint(source_code),
                )
            )
            return source_code

    async def discard(self, spec: FunctionSpec) -> None:
        """Forget the generated code so the next call generates it again."""
        await self.store.delete_artifact(spec.identifier)

    async def __call__(self, spec: FunctionSpec, input_data: dict[str, Any]) -> Any | RuntimeFault:
        source_code = await self.source_for(spec)
        try:
            instance = await self.manager.ensure_ready(spec.identifier, source_code)
        except CrashFault:
            # Code that cannot load is never reused; the next call generates afresh
            await self.discard(spec)
            raise
        return await self.client.invoke(instance, input_data)
