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
from pathlib import Path
from typing import Any

import docker
from docker.errors import BuildError, DockerException, ImageNotFound, NotFound

from coreason_llmfunction.exceptions import BuildFault
from coreason_llmfunction.models import RuntimeState
from coreason_llmfunction.runtime import IsolationBackend
from coreason_llmfunction.utils.logger import logger

LABEL = "coreason.llmfunction"


class DockerBackend(IsolationBackend):
    """
    Docker-based implementation of the IsolationBackend.
    One image and one detached container per function.

    With a network name, containers join an internal bridge network that has
    no route off the host and are reached on their network address. Without
    one, the wrapper port is published on 127.0.0.1 instead.
    """

    def __init__(
        self,
        container_port: int = 8080,
        cpu_limit: float = 0.5,
        mem_limit: str = "256m",
        network: str | None = None,
    ):
        self.client = docker.from_env()
        self.container_port = container_port
        self.cpu_limit = cpu_limit
        self.mem_limit = mem_limit
        self.network = network
        self._network_ready = False
        self._network_lock = asyncio.Lock()

    def _create_network(self) -> None:
        assert self.network is not None
        try:
            network = self.client.networks.get(self.network)
        except NotFound:
            logger.info(f"Creating internal network {self.network}")
            self.client.networks.create(self.network, driver="bridge", internal=True, labels={LABEL: "true"})
            return
        if not network.attrs.get("Internal"):
            logger.warning(f"Network {self.network} is not internal; sandboxes on it can reach external hosts")

    async def _ensure_network(self) -> None:
        if self.network is None or self._network_ready:
            return
        async with self._network_lock:
            if not self._network_ready:
                await asyncio.to_thread(self._create_network)
                self._network_ready = True

    def _build(self, bundle_dir: Path, tag: str) -> str:
        image, build_logs = self.client.images.build(
            path=str(bundle_dir),
            tag=tag,
            rm=True,
            forcerm=True,
            labels={LABEL: "true"},
        )
        for chunk in build_logs:
            if "stream" in chunk:
                logger.debug(chunk["stream"].rstrip())
        return str(image.id)

    async def build(self, bundle_dir: Path, tag: str) -> str:
        logger.info(f"Building image {tag} from {bundle_dir}")
        try:
            return await asyncio.to_thread(self._build, bundle_dir, tag)
        except BuildError as e:
            diagnostics = "".join(str(chunk.get("stream") or chunk.get("error") or "") for chunk in e.build_log)
            logger.error(f"Docker build failed for {tag}: {e.msg}")
            raise BuildFault(f"Docker build failed: {e.msg}", diagnostics) from e
        except DockerException as e:
            logger.error(f"Docker build failed for {tag}: {e}")
            raise BuildFault(f"Docker build failed: {e}", str(e)) from e

    async def start(self, image_ref: str, port: int, name: str) -> str:
        if self.network:
            logger.info(f"Starting container {name} on network {self.network}")
            placement: dict[str, Any] = {"network": self.network}
        else:
            logger.info(f"Starting container {name} on port {port}")
            placement = {"ports": {f"{self.container_port}/tcp": ("127.0.0.1", port)}}

        try:
            # A container left over from a lost record would hold the name
            await self.stop(name)
            await self._ensure_network()
            container = await asyncio.to_thread(
                self.client.containers.run,
                image_ref,
                detach=True,
                name=name,
                mem_limit=self.mem_limit,
                nano_cpus=int(self.cpu_limit * 1e9),
                labels={LABEL: "true"},
                read_only=True,
                cap_drop=["ALL"],
                security_opt=["no-new-privileges"],
                **placement,
            )
        except DockerException as e:
            logger.error(f"Failed to start container {name}: {e}")
            raise BuildFault(f"Failed to start container: {e}", str(e)) from e

        logger.info(f"Container started: {container.short_id}")
        return str(container.id)

    async def endpoint(self, runtime_ref: str, port: int) -> str | None:
        if not self.network:
            return None
        container = await self._get(runtime_ref)
        if container is None:
            return None
        networks = container.attrs.get("NetworkSettings", {}).get("Networks") or {}
        address = (networks.get(self.network) or {}).get("IPAddress")
        if not address:
            logger.warning(f"Container {runtime_ref[:12]} has no address on {self.network}")
            return None
        return f"http://{address}:{self.container_port}"

    async def _get(self, runtime_ref: str) -> Any | None:
        """Fetch a fresh view of a container, or None if it no longer exists."""
        try:
            container = await asyncio.to_thread(self.client.containers.get, runtime_ref)
            await asyncio.to_thread(container.reload)
        except NotFound:
            return None
        except DockerException as e:
            logger.error(f"Docker daemon error while inspecting {runtime_ref[:12]}: {e}")
            raise BuildFault(f"Docker inspect failed: {e}", str(e)) from e
        return container

    async def inspect(self, runtime_ref: str) -> RuntimeState | None:
        container = await self._get(runtime_ref)
        if container is None:
            return None

        state = container.attrs.get("State", {})
        return RuntimeState(
            status=container.status,
            running=bool(state.get("Running", container.status == "running")),
            exit_code=state.get("ExitCode"),
        )

    async def logs(self, runtime_ref: str) -> str:
        try:
            container = await asyncio.to_thread(self.client.containers.get, runtime_ref)
            output = await asyncio.to_thread(container.logs, stdout=True, stderr=True)
        except DockerException as e:
            logger.warning(f"Could not fetch logs for {runtime_ref[:12]}: {e}")
            return ""
        return output.decode("utf-8", errors="replace")

    async def stop(self, runtime_ref: str) -> None:
        try:
            container = await asyncio.to_thread(self.client.containers.get, runtime_ref)
            logger.info(f"Removing container {container.short_id}")
            await asyncio.to_thread(container.remove, force=True)
        except NotFound:
            logger.debug(f"Container {runtime_ref[:12]} already gone")
        except DockerException as e:
            logger.error(f"Failed to remove container {runtime_ref[:12]}: {e}")
            raise BuildFault(f"Failed to remove container: {e}", str(e)) from e

    async def remove_image(self, image_ref: str) -> None:
        try:
            await asyncio.to_thread(self.client.images.remove, image_ref, force=True)
        except ImageNotFound:
            logger.debug(f"Image {image_ref[:19]} already gone")
