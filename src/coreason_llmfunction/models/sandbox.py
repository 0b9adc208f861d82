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
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class SandboxStatus(str, Enum):
    CREATING = "creating"
    BUILDING = "building"
    STARTING = "starting"
    READY = "ready"
    CRASHED = "crashed"
    REMOVED = "removed"


class SandboxInstance(BaseModel):
    """Durable record of the isolated runtime serving one function.

    Attributes:
        function_id: Identity of the function the sandbox executes.
        image_ref: Backend reference of the built image.
        runtime_ref: Backend reference of the running process or container.
        port: Host port reserved for the wrapper server on 127.0.0.1.
        endpoint: Base URL of the wrapper server when the backend reaches it
            on a private network address instead of the host port.
        source_fingerprint: Fingerprint of the code baked into the image.
        status: Lifecycle state.
        updated_at: Time of the last status change.
    """

    function_id: str
    image_ref: str | None = None
    runtime_ref: str | None = None
    port: int
    endpoint: str | None = None
    source_fingerprint: str
    status: SandboxStatus = SandboxStatus.CREATING
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def base_url(self) -> str:
        return self.endpoint or f"http://127.0.0.1:{self.port}"

    def transition(self, status: SandboxStatus) -> None:
        self.status = status
        self.updated_at = datetime.now(timezone.utc)


class RuntimeState(BaseModel):
    """What the isolation backend reports about a started runtime."""

    status: str
    running: bool
    exit_code: int | None = None

    @property
    def terminal(self) -> bool:
        return not self.running and self.status not in {"created", "restarting"}


class RuntimeFault(BaseModel):
    """Structured error returned by the sandbox when the artifact raises."""

    error: str
    stack: str = ""
    details: dict[str, Any] = Field(default_factory=dict)
