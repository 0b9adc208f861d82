# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_llmfunction

import json
from pathlib import Path

import pytest
from conftest import SUM_CODE

from coreason_llmfunction.bundle import BundleWriter
from coreason_llmfunction.exceptions import NotFoundFault
from coreason_llmfunction.models import FunctionSpec, GeneratedArtifact, SandboxInstance, SandboxStatus
from coreason_llmfunction.registry import InstanceRegistry
from coreason_llmfunction.store import FunctionStore
from coreason_llmfunction.utils.hashing import fingerprint


@pytest.mark.asyncio
async def test_store_round_trip(tmp_path: Path, sum_spec: FunctionSpec) -> None:
    store = FunctionStore(tmp_path)
    await store.initialize()
    await store.save(sum_spec)

    loaded = await store.load(sum_spec.identifier)

    assert loaded == sum_spec
    assert loaded.identifier == sum_spec.identifier
    assert await store.exists(sum_spec.identifier)
    document = json.loads((tmp_path / "functions" / f"{sum_spec.identifier}.json").read_text())
    assert "identifier" not in document


@pytest.mark.asyncio
async def test_store_index(tmp_path: Path, sum_spec: FunctionSpec) -> None:
    store = FunctionStore(tmp_path)
    await store.save(sum_spec)

    listed = await store.list_functions()

    assert len(listed) == 1
    assert listed[0]["identifier"] == sum_spec.identifier
    assert listed[0]["prompt"] == sum_spec.prompt
    assert "last_modified" in listed[0]


@pytest.mark.asyncio
async def test_store_load_unknown(tmp_path: Path) -> None:
    store = FunctionStore(tmp_path)
    await store.initialize()
    with pytest.raises(NotFoundFault) as exc_info:
        await store.load("0" * 64)
    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_store_rejects_path_like_identifiers(tmp_path: Path) -> None:
    store = FunctionStore(tmp_path)
    await store.initialize()
    assert not await store.exists("../index")
    with pytest.raises(NotFoundFault):
        await store.load("../index")


@pytest.mark.asyncio
async def test_store_artifacts(tmp_path: Path, sum_spec: FunctionSpec) -> None:
    store = FunctionStore(tmp_path)
    assert await store.load_artifact(sum_spec.identifier) is None

    artifact = GeneratedArtifact(
        source_code=SUM_CODE,
        owner_function_id=sum_spec.identifier,
        created_from_fingerprint=fingerprint(SUM_CODE),
    )
    await store.save_artifact(artifact)

    loaded = await store.load_artifact(sum_spec.identifier)
    assert loaded is not None
    assert loaded.source_code == SUM_CODE


@pytest.mark.asyncio
async def test_store_delete_removes_derived_data(tmp_path: Path, sum_spec: FunctionSpec) -> None:
    store = FunctionStore(tmp_path)
    await store.save(sum_spec)
    await store.save_artifact(
        GeneratedArtifact(
            source_code=SUM_CODE,
            owner_function_id=sum_spec.identifier,
            created_from_fingerprint=fingerprint(SUM_CODE),
        )
    )

    await store.delete(sum_spec.identifier)

    assert not await store.exists(sum_spec.identifier)
    assert await store.load_artifact(sum_spec.identifier) is None
    assert await store.list_functions() == []


@pytest.mark.asyncio
async def test_registry_round_trip(tmp_path: Path) -> None:
    registry = InstanceRegistry(tmp_path)
    instance = SandboxInstance(function_id="a" * 64, port=41000, source_fingerprint="f" * 64)
    await registry.save(instance)

    # A fresh registry reads from disk
    loaded = await InstanceRegistry(tmp_path).load("a" * 64)

    assert loaded is not None
    assert loaded.port == 41000
    assert loaded.status == SandboxStatus.CREATING
    assert await registry.used_ports() == {41000}


@pytest.mark.asyncio
async def test_registry_returns_copies(tmp_path: Path) -> None:
    registry = InstanceRegistry(tmp_path)
    await registry.save(SandboxInstance(function_id="a" * 64, port=41000, source_fingerprint="f" * 64))

    loaded = await registry.load("a" * 64)
    assert loaded is not None
    loaded.transition(SandboxStatus.READY)

    again = await registry.load("a" * 64)
    assert again is not None
    assert again.status == SandboxStatus.CREATING


@pytest.mark.asyncio
async def test_registry_discards_unreadable_records(tmp_path: Path) -> None:
    (tmp_path / f"{'a' * 64}.json").write_text('{"port": "not a port"}')
    registry = InstanceRegistry(tmp_path)

    assert await registry.load("a" * 64) is None
    assert not (tmp_path / f"{'a' * 64}.json").exists()
    assert await registry.all() == []


@pytest.mark.asyncio
async def test_bundle_contents(tmp_path: Path) -> None:
    writer = BundleWriter(tmp_path, image="python:3.12-slim", container_port=9000)

    bundle_dir = await writer.write("a" * 64, SUM_CODE)

    assert (bundle_dir / "artifact.py").read_text() == SUM_CODE
    assert (bundle_dir / "sandbox_server.py").is_file()
    dockerfile = (bundle_dir / "Dockerfile").read_text()
    assert dockerfile.startswith("FROM python:3.12-slim")
    assert "USER nobody" in dockerfile
    assert '"--port", "9000"' in dockerfile

    await writer.remove("a" * 64)
    assert not bundle_dir.exists()
