# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_llmfunction

from pathlib import Path

import aiofiles  # type: ignore[import-untyped]
import aiofiles.os  # type: ignore[import-untyped]
from pydantic import ValidationError

from coreason_llmfunction.models import SandboxInstance
from coreason_llmfunction.utils.logger import logger


class InstanceRegistry:
    """Durable registry of sandbox instances, one JSON document per function id.

    The documents on disk are the source of truth; the in-memory map only
    saves re-reading them.
    """

    def __init__(self, root: Path):
        """Initializes the InstanceRegistry.

        Args:
            root: Directory holding ``<function_id>.json`` records.
        """
        self.root = root
        self._cache: dict[str, SandboxInstance] = {}

    def _path(self, function_id: str) -> Path:
        return self.root / f"{function_id}.json"

    async def load(self, function_id: str) -> SandboxInstance | None:
        """Return the record for function_id, or None if there is none.

        Unreadable records are discarded.
        """
        if function_id in self._cache:
            return self._cache[function_id].model_copy()

        path = self._path(function_id)
        if not await aiofiles.os.path.exists(path):
            return None

        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            data = await f.read()
        try:
            instance = SandboxInstance.model_validate_json(data)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable sandbox record {path.name}: {e}")
            await self.delete(function_id)
            return None

        self._cache[function_id] = instance
        return instance.model_copy()

    async def save(self, instance: SandboxInstance) -> None:
        await aiofiles.os.makedirs(self.root, exist_ok=True)
        path = self._path(instance.function_id)
        tmp_path = path.with_suffix(".json.tmp")
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(instance.model_dump_json(indent=2))
        await aiofiles.os.replace(tmp_path, path)
        self._cache[instance.function_id] = instance.model_copy()

    async def delete(self, function_id: str) -> None:
        self._cache.pop(function_id, None)
        try:
            await aiofiles.os.remove(self._path(function_id))
        except FileNotFoundError:
            pass

    async def all(self) -> list[SandboxInstance]:
        if not await aiofiles.os.path.exists(self.root):
            return []
        instances = []
        for name in sorted(await aiofiles.os.listdir(self.root)):
            if not name.endswith(".json"):
                continue
            instance = await self.load(name[: -len(".json")])
            if instance is not None:
                instances.append(instance)
        return instances

    async def used_ports(self) -> set[int]:
        return {instance.port for instance in await self.all()}
