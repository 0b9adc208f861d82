# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_llmfunction

import asyncio
import json
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

from coreason_llmfunction.config import FunctionConfig
from coreason_llmfunction.models import Example, FunctionSpec, RuntimeState
from coreason_llmfunction.runtime import IsolationBackend

SUM_PROMPT = "Add the numbers 'a' and 'b' and return them as 'sum'."
SUM_CODE = 'result = {"sum": input["a"] + input["b"]}'


def chat_response(content: str) -> httpx.Response:
    """A chat completions envelope carrying content."""
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def healthy_sandbox(run_result: Any = None) -> Callable[[httpx.Request], httpx.Response]:
    """Handler for a sandbox that is live and answers /run with run_result."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/health":
            return httpx.Response(200, json={"status": "ok"})
        return httpx.Response(200, json=run_result if run_result is not None else {"sum": 10})

    return handler


class FakeBackend(IsolationBackend):
    """In-memory isolation backend recording every call."""

    def __init__(self) -> None:
        self.builds = 0
        self.started: list[tuple[str, int, str]] = []
        self.stopped: list[str] = []
        self.removed_images: list[str] = []
        self.states: dict[str, RuntimeState] = {}
        self.crash_on_start = False
        self.crash_logs = 'File "artifact.py", line 1\nSyntaxError: invalid syntax'
        self.fail_stop = False
        self.build_delay = 0.0

    async def build(self, bundle_dir: Path, tag: str) -> str:
        self.builds += 1
        await asyncio.sleep(self.build_delay)
        return f"image-{self.builds}"

    async def start(self, image_ref: str, port: int, name: str) -> str:
        runtime_ref = f"runtime-{len(self.started) + 1}"
        self.started.append((image_ref, port, name))
        if self.crash_on_start:
            self.states[runtime_ref] = RuntimeState(status="exited", running=False, exit_code=1)
        else:
            self.states[runtime_ref] = RuntimeState(status="running", running=True)
        return runtime_ref

    async def inspect(self, runtime_ref: str) -> RuntimeState | None:
        return self.states.get(runtime_ref)

    async def logs(self, runtime_ref: str) -> str:
        return self.crash_logs if self.crash_on_start else ""

    async def stop(self, runtime_ref: str) -> None:
        if self.fail_stop:
            raise RuntimeError("daemon unavailable")
        self.stopped.append(runtime_ref)
        self.states.pop(runtime_ref, None)

    async def remove_image(self, image_ref: str) -> None:
        self.removed_images.append(image_ref)


@pytest.fixture
def config(tmp_path: Path) -> FunctionConfig:
    return FunctionConfig(
        runtime="subprocess",
        state_dir=tmp_path / "state",
        port_range_start=42100,
        port_range_end=42199,
        poll_attempts=3,
        poll_interval=0.0,
        llm_api_key="test-key",
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def sum_spec() -> FunctionSpec:
    return FunctionSpec(
        prompt=SUM_PROMPT,
        examples=[
            Example(input={"a": 5, "b": 5}, output={"sum": 10}),
            Example(input={"a": 2, "b": 3}, output={"sum": 5}),
        ],
    )


@pytest.fixture
def code_reply() -> str:
    return json.dumps({"code": SUM_CODE})
