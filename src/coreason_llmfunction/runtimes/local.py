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
import os
import subprocess
import sys
from pathlib import Path

from coreason_llmfunction.exceptions import BuildFault
from coreason_llmfunction.models import RuntimeState
from coreason_llmfunction.runtime import IsolationBackend
from coreason_llmfunction.utils.logger import logger

REQUIRED_FILES = ("artifact.py", "sandbox_server.py")


class SubprocessBackend(IsolationBackend):
    """Runs each sandbox as a separate local Python process.

    The process runs in isolated mode (``-I``) with a scrubbed environment,
    the bundle directory as working directory and the restricted evaluation
    scope of the wrapper server. It is meant for development and tests on
    hosts without Docker; only processes started by this instance can be
    inspected or stopped.
    """

    def __init__(self, python: str | None = None, stop_timeout: float = 5.0):
        self.python = python or sys.executable
        self.stop_timeout = stop_timeout
        self._processes: dict[str, subprocess.Popen[bytes]] = {}
        self._log_files: dict[str, Path] = {}

    async def build(self, bundle_dir: Path, tag: str) -> str:
        missing = [name for name in REQUIRED_FILES if not (bundle_dir / name).is_file()]
        if missing:
            raise BuildFault(f"Bundle {tag} is incomplete", f"missing: {', '.join(missing)}")
        logger.info(f"Prepared process image {tag} at {bundle_dir}")
        return str(bundle_dir)

    def _spawn(self, bundle_dir: Path, port: int, log_path: Path) -> subprocess.Popen[bytes]:
        with open(log_path, "wb") as log_file:
            return subprocess.Popen(
                [self.python, "-I", "-u", "sandbox_server.py", "--host", "127.0.0.1", "--port", str(port)],
                cwd=bundle_dir,
                stdin=subprocess.DEVNULL,
                stdout=log_file,
                stderr=subprocess.STDOUT,
                env={"PATH": os.environ.get("PATH", "")},
                start_new_session=True,
            )

    async def start(self, image_ref: str, port: int, name: str) -> str:
        bundle_dir = Path(image_ref)
        log_path = bundle_dir / "runtime.log"
        logger.info(f"Starting process {name} on port {port}")
        try:
            process = await asyncio.to_thread(self._spawn, bundle_dir, port, log_path)
        except OSError as e:
            logger.error(f"Failed to start process {name}: {e}")
            raise BuildFault(f"Failed to start process: {e}", str(e)) from e

        runtime_ref = str(process.pid)
        self._processes[runtime_ref] = process
        self._log_files[runtime_ref] = log_path
        return runtime_ref

    async def inspect(self, runtime_ref: str) -> RuntimeState | None:
        process = self._processes.get(runtime_ref)
        if process is None:
            return None
        exit_code = process.poll()
        if exit_code is None:
            return RuntimeState(status="running", running=True)
        return RuntimeState(status="exited", running=False, exit_code=exit_code)

    async def logs(self, runtime_ref: str) -> str:
        log_path = self._log_files.get(runtime_ref)
        if log_path is None or not log_path.exists():
            return ""
        return await asyncio.to_thread(log_path.read_text, encoding="utf-8", errors="replace")

    def _terminate(self, process: subprocess.Popen[bytes]) -> None:
        if process.poll() is not None:
            return
        process.terminate()
        try:
            process.wait(timeout=self.stop_timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()

    async def stop(self, runtime_ref: str) -> None:
        process = self._processes.pop(runtime_ref, None)
        self._log_files.pop(runtime_ref, None)
        if process is None:
            logger.debug(f"Process {runtime_ref} is not managed here")
            return
        logger.info(f"Stopping process {runtime_ref}")
        await asyncio.to_thread(self._terminate, process)

    async def remove_image(self, image_ref: str) -> None:
        # The bundle directory is the image; the manager removes it with the bundle.
        return None
