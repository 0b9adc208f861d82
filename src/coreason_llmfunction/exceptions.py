# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_llmfunction

"""Fault taxonomy for function generation, sandboxing and inference.

Every fault carries the structured context a caller needs to render a precise
message (validation reason, offending excerpt, container logs, raw model
text). ``status_code`` maps the fault onto the HTTP class the route layer
should answer with.
"""

from typing import Any


class LLMFunctionError(Exception):
    """Base class for all faults raised by this package."""

    kind = "error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def context(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "error": self.message, **self.context()}


class ValidationFault(LLMFunctionError):
    """Bad function definition or generated code rejected by the static gate."""

    kind = "validation"
    status_code = 400

    def __init__(self, reason: str, excerpt: str | None = None):
        message = reason if excerpt is None else f"{reason}: {excerpt}"
        super().__init__(message)
        self.reason = reason
        self.excerpt = excerpt

    def context(self) -> dict[str, Any]:
        return {"reason": self.reason, "excerpt": self.excerpt}


class NotFoundFault(LLMFunctionError):
    kind = "not_found"
    status_code = 404

    def __init__(self, identifier: str):
        super().__init__(f"Function not found with identifier: {identifier}")
        self.identifier = identifier

    def context(self) -> dict[str, Any]:
        return {"identifier": self.identifier}


class BuildFault(LLMFunctionError):
    """The sandbox image could not be built."""

    kind = "build"
    status_code = 422

    def __init__(self, message: str, diagnostics: str = ""):
        super().__init__(message)
        self.diagnostics = diagnostics

    def context(self) -> dict[str, Any]:
        return {"diagnostics": self.diagnostics}


class CrashFault(LLMFunctionError):
    """The sandbox process exited (or never became live) before reaching Ready."""

    kind = "crash"
    status_code = 422

    def __init__(self, message: str, exit_state: str, logs: str = ""):
        super().__init__(message)
        self.exit_state = exit_state
        self.logs = logs

    def context(self) -> dict[str, Any]:
        return {"exit_state": self.exit_state, "logs": self.logs}


class NetworkFault(LLMFunctionError):
    kind = "network"
    status_code = 502

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message)
        self.url = url

    def context(self) -> dict[str, Any]:
        return {"url": self.url}


class ParseFault(LLMFunctionError):
    """A model (or sandbox) response could not be interpreted."""

    kind = "parse"
    status_code = 502

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw

    def context(self) -> dict[str, Any]:
        return {"raw": self.raw}
