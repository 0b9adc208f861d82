# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_llmfunction

from abc import ABC, abstractmethod
from pathlib import Path

from coreason_llmfunction.models import RuntimeState


class IsolationBackend(ABC):
    """
    Abstract base class for the isolation substrate (e.g., Docker, local subprocess).
    Follows the Strategy Pattern; the SandboxManager only talks to this interface.
    """

    @abstractmethod
    async def build(self, bundle_dir: Path, tag: str) -> str:
        """Build an immutable image from a bundle directory.

        Args:
            bundle_dir: Directory holding artifact.py, sandbox_server.py and the Dockerfile.
            tag: Name to give the image.

        Returns:
            str: A reference to the built image.

        Raises:
            BuildFault: If the image cannot be built.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def start(self, image_ref: str, port: int, name: str) -> str:
        """Start a detached runtime from an image.

        Args:
            image_ref: Reference returned by build().
            port: Host port the wrapper server must be reachable on (127.0.0.1).
            name: Human-readable name for the runtime.

        Returns:
            str: A reference to the started runtime.

        Raises:
            BuildFault: If the runtime cannot be started at all.
        """
        pass  # pragma: no cover

    async def endpoint(self, runtime_ref: str, port: int) -> str | None:
        """Base URL of the wrapper server when it is not published on 127.0.0.1:port.

        Backends that reach the runtime on its own network address return that
        URL here. The default of None means the host port is used.
        """
        return None

    @abstractmethod
    async def inspect(self, runtime_ref: str) -> RuntimeState | None:
        """Report the runtime status, or None if it no longer exists."""
        pass  # pragma: no cover

    @abstractmethod
    async def logs(self, runtime_ref: str) -> str:
        """Return the combined output of the runtime ("" if unavailable)."""
        pass  # pragma: no cover

    @abstractmethod
    async def stop(self, runtime_ref: str) -> None:
        """Stop and remove the runtime. Missing runtimes are ignored."""
        pass  # pragma: no cover

    @abstractmethod
    async def remove_image(self, image_ref: str) -> None:
        """Delete a built image. Missing images are ignored."""
        pass  # pragma: no cover
