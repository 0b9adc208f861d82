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
import socket
from collections.abc import Awaitable

import httpx

from coreason_llmfunction.bundle import BundleWriter
from coreason_llmfunction.config import FunctionConfig
from coreason_llmfunction.exceptions import BuildFault, CrashFault
from coreason_llmfunction.factory import BackendFactory
from coreason_llmfunction.models import SandboxInstance, SandboxStatus
from coreason_llmfunction.registry import InstanceRegistry
from coreason_llmfunction.runtime import IsolationBackend
from coreason_llmfunction.utils.hashing import fingerprint
from coreason_llmfunction.utils.logger import logger


def _port_is_free(port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind(("127.0.0.1", port))
        except OSError:
            return False
    return True


class SandboxManager:
    """Manages the lifecycle of one sandbox per function identity.

    A sandbox moves through creating -> building -> starting -> ready. It is
    reused while the fingerprint of its source matches, and torn down and
    rebuilt otherwise. Create, rebuild and removal for the same function id
    are serialized by a per-id lock; different ids proceed concurrently.
    """

    def __init__(
        self,
        config: FunctionConfig | None = None,
        backend: IsolationBackend | None = None,
        registry: InstanceRegistry | None = None,
        bundles: BundleWriter | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initializes the SandboxManager.

        Args:
            config: Optional configuration object. If not provided, defaults are used.
            backend: Isolation backend. Defaults to the one selected by ``config.runtime``.
            registry: Durable instance registry. Defaults to ``<state_dir>/sandboxes``.
            bundles: Bundle writer. Defaults to ``<state_dir>/bundles``.
            client: Optional httpx.AsyncClient used for health probes.
        """
        self.config = config or FunctionConfig()
        self.backend = backend or BackendFactory.get_backend(self.config)
        self.registry = registry or InstanceRegistry(self.config.state_dir / "sandboxes")
        self.bundles = bundles or BundleWriter(
            self.config.state_dir / "bundles",
            image=self.config.docker_image,
            container_port=self.config.container_port,
        )
        self._internal_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.config.sandbox_timeout)
        self._locks: dict[str, asyncio.Lock] = {}
        self._creation_lock = asyncio.Lock()
        self._port_lock = asyncio.Lock()
        self._claimed_ports: set[int] = set()

    async def _lock_for(self, function_id: str) -> asyncio.Lock:
        async with self._creation_lock:
            return self._locks.setdefault(function_id, asyncio.Lock())

    async def get(self, function_id: str) -> SandboxInstance | None:
        return await self.registry.load(function_id)

    async def ensure_ready(self, function_id: str, source_code: str) -> SandboxInstance:
        """Return a ready sandbox running source_code for function_id.

        An existing sandbox is reused when it is alive, ready and built from the
        same source; otherwise it is torn down and a new one is built.

        Args:
            function_id: Identity of the function.
            source_code: Validated generated code.

        Returns:
            SandboxInstance: The ready instance.

        Raises:
            BuildFault: If the image could not be built or the runtime not started.
            CrashFault: If the runtime exited or never became live within the polling ceiling.
        """
        lock = await self._lock_for(function_id)
        async with lock:
            digest = fingerprint(source_code)
            instance = await self._load_live(function_id)

            if instance is not None:
                if instance.status == SandboxStatus.READY and instance.source_fingerprint == digest:
                    logger.debug(f"Reusing sandbox for {function_id[:12]} at {instance.base_url}")
                    return instance
                logger.info(
                    f"Sandbox for {function_id[:12]} is {instance.status.value} with fingerprint "
                    f"{instance.source_fingerprint[:12]}, rebuilding for {digest[:12]}"
                )
                await self._teardown(instance)

            return await self._create(function_id, source_code, digest)

    async def remove(self, function_id: str) -> None:
        """Tear down the sandbox for function_id, if any. Never raises on cleanup failures."""
        lock = await self._lock_for(function_id)
        async with lock:
            instance = await self.registry.load(function_id)
            if instance is None:
                await self._best_effort("remove bundle", self.bundles.remove(function_id))
                return
            await self._teardown(instance)

    async def shutdown(self, teardown: bool = False) -> None:
        """Close the probe client and optionally tear down every registered sandbox."""
        if teardown:
            instances = await self.registry.all()
            logger.info(f"Shutting down SandboxManager. Removing {len(instances)} sandboxes.")
            for instance in instances:
                await self.remove(instance.function_id)
        if self._internal_client:
            await self._client.aclose()

    async def _load_live(self, function_id: str) -> SandboxInstance | None:
        """Load the record and discard it if its runtime is no longer alive."""
        instance = await self.registry.load(function_id)
        if instance is None:
            return None

        state = await self.backend.inspect(instance.runtime_ref) if instance.runtime_ref else None
        if state is None or not state.running:
            logger.warning(
                f"Discarding stale sandbox record for {function_id[:12]} "
                f"(status {instance.status.value}, runtime {'gone' if state is None else state.status})"
            )
            await self._teardown(instance)
            return None
        return instance

    async def _create(self, function_id: str, source_code: str, digest: str) -> SandboxInstance:
        port = await self._allocate_port()
        instance = SandboxInstance(function_id=function_id, port=port, source_fingerprint=digest)
        try:
            await self.registry.save(instance)

            bundle_dir = await self.bundles.write(function_id, source_code)
            await self._transition(instance, SandboxStatus.BUILDING)
            instance.image_ref = await self.backend.build(bundle_dir, self._tag(function_id, digest))

            # Persist before starting so a crash during start is attributable on the next lookup
            await self._transition(instance, SandboxStatus.STARTING)
            instance.runtime_ref = await self.backend.start(instance.image_ref, port, self._name(function_id))
            instance.endpoint = await self.backend.endpoint(instance.runtime_ref, port)
            await self.registry.save(instance)

            await self._wait_until_ready(instance)
            await self._transition(instance, SandboxStatus.READY)
        except BuildFault:
            await self._transition(instance, SandboxStatus.CRASHED)
            raise
        finally:
            self._claimed_ports.discard(port)

        logger.info(f"Sandbox for {function_id[:12]} ready at {instance.base_url}")
        return instance

    async def _wait_until_ready(self, instance: SandboxInstance) -> None:
        runtime_ref = instance.runtime_ref
        assert runtime_ref is not None

        for attempt in range(1, self.config.poll_attempts + 1):
            state = await self.backend.inspect(runtime_ref)
            if state is None:
                raise await self._crash(instance, "disappeared")
            if state.running:
                if await self._probe(instance):
                    logger.debug(f"Sandbox for {instance.function_id[:12]} live after {attempt} attempts")
                    return
            elif state.terminal:
                raise await self._crash(instance, f"{state.status} (exit code {state.exit_code})")
            await asyncio.sleep(self.config.poll_interval)

        raise await self._crash(instance, "timeout", still_running=True)

    async def _crash(self, instance: SandboxInstance, exit_state: str, still_running: bool = False) -> CrashFault:
        logs = ""
        if instance.runtime_ref:
            logs = await self.backend.logs(instance.runtime_ref)
            if still_running:
                # A crashed record must not keep a live runtime behind it
                await self._best_effort("stop runtime", self.backend.stop(instance.runtime_ref))
        await self._transition(instance, SandboxStatus.CRASHED)
        logger.error(f"Sandbox for {instance.function_id[:12]} failed before becoming ready: {exit_state}")
        return CrashFault(
            f"Sandbox for {instance.function_id[:12]} did not become ready ({exit_state})",
            exit_state=exit_state,
            logs=logs,
        )

    async def _probe(self, instance: SandboxInstance) -> bool:
        try:
            response = await self._client.get(f"{instance.base_url}/health")
        except httpx.HTTPError:
            return False
        return response.status_code == 200

    async def _transition(self, instance: SandboxInstance, status: SandboxStatus) -> None:
        logger.debug(f"Sandbox {instance.function_id[:12]}: {instance.status.value} -> {status.value}")
        instance.transition(status)
        await self.registry.save(instance)

    async def _teardown(self, instance: SandboxInstance) -> None:
        """Release everything held by instance, then deregister it.

        Individual cleanup failures are logged and absorbed so removal is never
        blocked by a half torn-down resource.
        """
        function_id = instance.function_id
        logger.info(f"Tearing down sandbox for {function_id[:12]}")
        if instance.runtime_ref:
            await self._best_effort("stop runtime", self.backend.stop(instance.runtime_ref))
        if instance.image_ref:
            await self._best_effort("remove image", self.backend.remove_image(instance.image_ref))
        await self._best_effort("remove bundle", self.bundles.remove(function_id))
        await self._best_effort("deregister", self.registry.delete(function_id))
        instance.transition(SandboxStatus.REMOVED)

    async def _best_effort(self, action: str, operation: Awaitable[None]) -> None:
        try:
            await operation
        except Exception as e:
            logger.warning(f"Failed to {action} during teardown: {e}")

    async def _allocate_port(self) -> int:
        async with self._port_lock:
            used = await self.registry.used_ports() | self._claimed_ports
            for port in range(self.config.port_range_start, self.config.port_range_end + 1):
                if port in used:
                    continue
                if not await asyncio.to_thread(_port_is_free, port):
                    continue
                self._claimed_ports.add(port)
                return port

        raise BuildFault(
            "No free sandbox port",
            f"all ports in {self.config.port_range_start}-{self.config.port_range_end} are taken",
        )

    @staticmethod
    def _name(function_id: str) -> str:
        return f"llmfunction-{function_id[:16]}"

    @staticmethod
    def _tag(function_id: str, digest: str) -> str:
        return f"llmfunction-{function_id[:16]}:{digest[:12]}"
