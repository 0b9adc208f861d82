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
from typing import Any, Literal

from mcp.server.fastmcp import FastMCP

from coreason_llmfunction.exceptions import LLMFunctionError
from coreason_llmfunction.models import RuntimeFault
from coreason_llmfunction.service import LLMFunctionService

# Initialize MCP Server
mcp = FastMCP("coreason-llmfunction")

_service: LLMFunctionService | None = None
_service_lock = asyncio.Lock()


async def get_service() -> LLMFunctionService:
    """Return the shared service, creating it on first use."""
    global _service
    async with _service_lock:
        if _service is None:
            service = LLMFunctionService()
            await service.store.initialize()
            _service = service
    return _service


def _render(value: Any) -> str:
    if isinstance(value, RuntimeFault):
        value = {"fault": value.model_dump()}
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def _error(action: str, e: Exception) -> str:
    if isinstance(e, LLMFunctionError):
        return f"Error {action}: {_render(e.to_dict())}"
    return f"Error {action}: {e!s}"


@mcp.tool()  # type: ignore[misc]
async def create_function(prompt: str, examples: list[dict[str, Any]]) -> str:
    """
    Define a function from a prompt and input/output examples.
    Returns the function identifier.
    """
    try:
        service = await get_service()
        spec = await service.create_function({"prompt": prompt, "examples": examples})
    except Exception as e:
        return _error("creating function", e)
    return spec.identifier


@mcp.tool()  # type: ignore[misc]
async def run_function(function_id: str, input_data: dict[str, Any]) -> str:
    """
    Run a function by asking the model directly.
    """
    try:
        service = await get_service()
        return _render(await service.run(function_id, input_data))
    except Exception as e:
        return _error("running function", e)


@mcp.tool()  # type: ignore[misc]
async def run_function_with_code(function_id: str, input_data: dict[str, Any]) -> str:
    """
    Run a function through its generated code inside an isolated sandbox.
    """
    try:
        service = await get_service()
        return _render(await service.run_with_code(function_id, input_data))
    except Exception as e:
        return _error("running function code", e)


@mcp.tool()  # type: ignore[misc]
async def test_function(function_id: str, mode: Literal["direct", "compiled"] = "direct") -> str:
    """
    Run every example of a function and report which ones pass.
    """
    try:
        service = await get_service()
        summary = await service.test(function_id, mode)
    except Exception as e:
        return _error("testing function", e)
    return summary.model_dump_json(indent=2)


@mcp.tool()  # type: ignore[misc]
async def improve_function(function_id: str, mode: Literal["direct", "compiled"] = "direct") -> str:
    """
    Rewrite a function's prompt from its test results.
    Returns the identifier of the refined function; the original is kept.
    """
    try:
        service = await get_service()
        refined = await service.improve(function_id, mode)
    except Exception as e:
        return _error("improving function", e)
    return refined.identifier


@mcp.tool()  # type: ignore[misc]
async def get_function_code(function_id: str) -> str:
    """
    Return the generated code of a function, generating it if needed.
    """
    try:
        service = await get_service()
        return await service.get_code(function_id)
    except Exception as e:
        return _error("getting function code", e)


@mcp.tool()  # type: ignore[misc]
async def remove_function(function_id: str) -> str:
    """
    Remove a function, its generated code and its sandbox.
    """
    try:
        service = await get_service()
        await service.remove_function(function_id)
    except Exception as e:
        return _error("removing function", e)
    return f"Removed {function_id}"


def main() -> None:
    """Entry point for the MCP server."""
    mcp.run()


if __name__ == "__main__":  # pragma: no cover
    main()
