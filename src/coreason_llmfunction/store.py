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
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiofiles  # type: ignore[import-untyped]
import aiofiles.os  # type: ignore[import-untyped]

from coreason_llmfunction.exceptions import NotFoundFault
from coreason_llmfunction.models import FunctionSpec, GeneratedArtifact
from coreason_llmfunction.utils.logger import logger

_IDENTIFIER_RE = re.compile(r"^[0-9a-f]{64}$")


async def _write_json(path: Path, data: Any) -> None:
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
        await f.write(json.dumps(data, indent=2, ensure_ascii=False, default=str))
    await aiofiles.os.replace(tmp_path, path)


async def _remove(path: Path) -> None:
    try:
        await aiofiles.os.remove(path)
    except FileNotFoundError:
        pass


class FunctionStore:
    """Persists function definitions and their generated code as JSON documents.

    Layout under ``root``::

        functions/<identifier>.json   the FunctionSpec document
        artifacts/<identifier>.json   the GeneratedArtifact, once code was generated
        index.json                    {identifier: {prompt, last_modified}}
    """

    def __init__(self, root: Path):
        self.root = root
        self.functions_path = root / "functions"
        self.artifacts_path = root / "artifacts"
        self.index_path = root / "index.json"
        self._index_lock = asyncio.Lock()

    @staticmethod
    def _document(folder: Path, identifier: str) -> Path:
        # Identifiers come from callers; anything but a content hash cannot exist
        if not _IDENTIFIER_RE.match(identifier):
            raise NotFoundFault(identifier)
        return folder / f"{identifier}.json"

    async def initialize(self) -> None:
        await aiofiles.os.makedirs(self.functions_path, exist_ok=True)
        await aiofiles.os.makedirs(self.artifacts_path, exist_ok=True)
        if not await aiofiles.os.path.exists(self.index_path):
            await _write_json(self.index_path, {})

    async def _load_index(self) -> dict[str, Any]:
        if not await aiofiles.os.path.exists(self.index_path):
            return {}
        async with aiofiles.open(self.index_path, "r", encoding="utf-8") as f:
            return json.loads(await f.read())

    async def save(self, spec: FunctionSpec) -> None:
        await self.initialize()
        await _write_json(self._document(self.functions_path, spec.identifier), spec.document())
        async with self._index_lock:
            index = await self._load_index()
            index[spec.identifier] = {
                "prompt": spec.prompt,
                "last_modified": datetime.now(timezone.utc).isoformat(),
            }
            await _write_json(self.index_path, index)
        logger.debug(f"Saved function {spec.identifier[:12]}")

    async def exists(self, identifier: str) -> bool:
        try:
            path = self._document(self.functions_path, identifier)
        except NotFoundFault:
            return False
        return await aiofiles.os.path.exists(path)

    async def load(self, identifier: str) -> FunctionSpec:
        """Load a function by identity.

        Raises:
            NotFoundFault: If no document exists for identifier.
        """
        path = self._document(self.functions_path, identifier)
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                data = await f.read()
        except FileNotFoundError as e:
            raise NotFoundFault(identifier) from e
        return FunctionSpec.model_validate_json(data)

    async def delete(self, identifier: str) -> None:
        await _remove(self._document(self.functions_path, identifier))
        await self.delete_artifact(identifier)
        async with self._index_lock:
            index = await self._load_index()
            if index.pop(identifier, None) is not None:
                await _write_json(self.index_path, index)

    async def list_functions(self) -> list[dict[str, Any]]:
        index = await self._load_index()
        return [{"identifier": identifier, **entry} for identifier, entry in index.items()]

    async def save_artifact(self, artifact: GeneratedArtifact) -> None:
        await self.initialize()
        await _write_json(
            self._document(self.artifacts_path, artifact.owner_function_id),
            artifact.model_dump(mode="json"),
        )

    async def load_artifact(self, identifier: str) -> GeneratedArtifact | None:
        path = self._document(self.artifacts_path, identifier)
        if not await aiofiles.os.path.exists(path):
            return None
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            return GeneratedArtifact.model_validate_json(await f.read())

    async def delete_artifact(self, identifier: str) -> None:
        await _remove(self._document(self.artifacts_path, identifier))
