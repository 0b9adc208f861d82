# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_llmfunction

import shutil
from pathlib import Path

import anyio

from coreason_llmfunction.utils.logger import logger

SERVER_SOURCE = Path(__file__).with_name("sandbox_server.py")

DOCKERFILE_TEMPLATE = """FROM {image}
WORKDIR /app
COPY artifact.py sandbox_server.py ./
USER nobody
EXPOSE {port}
CMD ["python", "-u", "sandbox_server.py", "--host", "0.0.0.0", "--port", "{port}"]
"""


class BundleWriter:
    """Materializes the minimal runtime package for one function."""

    def __init__(self, root: Path, image: str = "python:3.12-slim", container_port: int = 8080):
        self.root = root
        self.image = image
        self.container_port = container_port

    def path_for(self, function_id: str) -> Path:
        return self.root / function_id

    def _write(self, function_id: str, source_code: str) -> Path:
        bundle_dir = self.path_for(function_id)
        if bundle_dir.exists():
            shutil.rmtree(bundle_dir)
        bundle_dir.mkdir(parents=True)

        (bundle_dir / "artifact.py").write_text(source_code, encoding="utf-8")
        shutil.copyfile(SERVER_SOURCE, bundle_dir / "sandbox_server.py")
        (bundle_dir / "Dockerfile").write_text(
            DOCKERFILE_TEMPLATE.format(image=self.image, port=self.container_port),
            encoding="utf-8",
        )
        return bundle_dir

    async def write(self, function_id: str, source_code: str) -> Path:
        """Write artifact.py, sandbox_server.py and a Dockerfile into a fresh directory.

        Args:
            function_id: Identity of the function; names the directory.
            source_code: The generated code to embed.

        Returns:
            Path: The bundle directory.
        """
        bundle_dir = await anyio.to_thread.run_sync(self._write, function_id, source_code)
        logger.debug(f"Bundle for {function_id[:12]} written to {bundle_dir}")
        return bundle_dir

    async def remove(self, function_id: str) -> None:
        bundle_dir = self.path_for(function_id)
        await anyio.to_thread.run_sync(lambda: shutil.rmtree(bundle_dir, ignore_errors=True))
