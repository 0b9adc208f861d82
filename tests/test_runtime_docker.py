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
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from docker.errors import APIError, BuildError, ImageNotFound, NotFound

from coreason_llmfunction.config import FunctionConfig
from coreason_llmfunction.exceptions import BuildFault
from coreason_llmfunction.factory import BackendFactory
from coreason_llmfunction.runtimes.docker import LABEL, DockerBackend
from coreason_llmfunction.runtimes.local import SubprocessBackend


@pytest.fixture
def mock_docker_client() -> Any:
    with patch("coreason_llmfunction.runtimes.docker.docker.from_env") as mock:
        yield mock


@pytest.fixture
def docker_backend(mock_docker_client: Any) -> DockerBackend:
    return DockerBackend(container_port=8080, cpu_limit=0.5, mem_limit="256m")


@pytest.fixture
def networked_backend(mock_docker_client: Any) -> DockerBackend:
    return DockerBackend(container_port=8080, cpu_limit=0.5, mem_limit="256m", network="llmfunction-sandbox")


@pytest.mark.asyncio
async def test_build_success(docker_backend: DockerBackend, mock_docker_client: Any, tmp_path: Path) -> None:
    mock_image = MagicMock()
    mock_image.id = "sha256:abc"
    mock_docker_client.return_value.images.build.return_value = (mock_image, [{"stream": "Step 1/5"}])

    assert await docker_backend.build(tmp_path, "llmfunction-x:1") == "sha256:abc"

    call_kwargs = mock_docker_client.return_value.images.build.call_args[1]
    assert call_kwargs["path"] == str(tmp_path)
    assert call_kwargs["tag"] == "llmfunction-x:1"
    assert call_kwargs["labels"] == {LABEL: "true"}


@pytest.mark.asyncio
async def test_build_failure_carries_diagnostics(
    docker_backend: DockerBackend, mock_docker_client: Any, tmp_path: Path
) -> None:
    mock_docker_client.return_value.images.build.side_effect = BuildError(
        "pull access denied", [{"stream": "Step 1/5 : FROM missing"}, {"error": "pull access denied"}]
    )

    with pytest.raises(BuildFault) as exc_info:
        await docker_backend.build(tmp_path, "llmfunction-x:1")

    assert "FROM missing" in exc_info.value.diagnostics
    assert "pull access denied" in exc_info.value.diagnostics


@pytest.mark.asyncio
async def test_start_runs_hardened_detached_container(docker_backend: DockerBackend, mock_docker_client: Any) -> None:
    client = mock_docker_client.return_value
    client.containers.get.side_effect = NotFound("no leftover")
    mock_container = MagicMock()
    mock_container.id = "container-id"
    client.containers.run.return_value = mock_container

    assert await docker_backend.start("sha256:abc", 41000, "llmfunction-x") == "container-id"

    call_args = client.containers.run.call_args
    assert call_args[0][0] == "sha256:abc"
    kwargs = call_args[1]
    assert kwargs["detach"] is True
    assert kwargs["name"] == "llmfunction-x"
    assert kwargs["ports"] == {"8080/tcp": ("127.0.0.1", 41000)}
    assert kwargs["mem_limit"] == "256m"
    assert kwargs["nano_cpus"] == 500_000_000
    assert kwargs["cap_drop"] == ["ALL"]
    assert kwargs["read_only"] is True
    assert "network" not in kwargs


@pytest.mark.asyncio
async def test_start_removes_leftover_container(docker_backend: DockerBackend, mock_docker_client: Any) -> None:
    client = mock_docker_client.return_value
    leftover = MagicMock()
    client.containers.get.return_value = leftover
    client.containers.run.return_value = MagicMock(id="new-id")

    await docker_backend.start("sha256:abc", 41000, "llmfunction-x")

    leftover.remove.assert_called_once_with(force=True)


@pytest.mark.asyncio
async def test_start_failure(docker_backend: DockerBackend, mock_docker_client: Any) -> None:
    client = mock_docker_client.return_value
    client.containers.get.side_effect = NotFound("no leftover")
    client.containers.run.side_effect = APIError("port is already allocated")

    with pytest.raises(BuildFault):
        await docker_backend.start("sha256:abc", 41000, "llmfunction-x")


@pytest.mark.asyncio
async def test_start_leftover_lookup_failure(docker_backend: DockerBackend, mock_docker_client: Any) -> None:
    client = mock_docker_client.return_value
    client.containers.get.side_effect = APIError("Cannot connect to the Docker daemon")

    with pytest.raises(BuildFault):
        await docker_backend.start("sha256:abc", 41000, "llmfunction-x")
    client.containers.run.assert_not_called()


@pytest.mark.asyncio
async def test_start_on_internal_network(networked_backend: DockerBackend, mock_docker_client: Any) -> None:
    client = mock_docker_client.return_value
    client.containers.get.side_effect = NotFound("no leftover")
    client.networks.get.side_effect = NotFound("no network")
    client.containers.run.return_value = MagicMock(id="container-id")

    await networked_backend.start("sha256:abc", 41000, "llmfunction-x")
    await networked_backend.start("sha256:abc", 41001, "llmfunction-y")

    client.networks.create.assert_called_once_with(
        "llmfunction-sandbox", driver="bridge", internal=True, labels={LABEL: "true"}
    )
    client.networks.get.assert_called_once_with("llmfunction-sandbox")
    kwargs = client.containers.run.call_args[1]
    assert kwargs["network"] == "llmfunction-sandbox"
    assert "ports" not in kwargs


@pytest.mark.asyncio
async def test_start_reuses_existing_network(networked_backend: DockerBackend, mock_docker_client: Any) -> None:
    client = mock_docker_client.return_value
    client.containers.get.side_effect = NotFound("no leftover")
    client.networks.get.return_value = MagicMock(attrs={"Internal": True})
    client.containers.run.return_value = MagicMock(id="container-id")

    await networked_backend.start("sha256:abc", 41000, "llmfunction-x")

    client.networks.create.assert_not_called()


@pytest.mark.asyncio
async def test_endpoint_uses_network_address(networked_backend: DockerBackend, mock_docker_client: Any) -> None:
    container = MagicMock()
    container.attrs = {"NetworkSettings": {"Networks": {"llmfunction-sandbox": {"IPAddress": "172.30.0.5"}}}}
    mock_docker_client.return_value.containers.get.return_value = container

    assert await networked_backend.endpoint("container-id", 41000) == "http://172.30.0.5:8080"


@pytest.mark.asyncio
async def test_endpoint_without_address(networked_backend: DockerBackend, mock_docker_client: Any) -> None:
    container = MagicMock()
    container.attrs = {"NetworkSettings": {"Networks": {}}}
    mock_docker_client.return_value.containers.get.return_value = container

    assert await networked_backend.endpoint("container-id", 41000) is None


@pytest.mark.asyncio
async def test_endpoint_published_port(docker_backend: DockerBackend, mock_docker_client: Any) -> None:
    assert await docker_backend.endpoint("container-id", 41000) is None
    mock_docker_client.return_value.containers.get.assert_not_called()


@pytest.mark.asyncio
async def test_inspect_running(docker_backend: DockerBackend, mock_docker_client: Any) -> None:
    container = MagicMock()
    container.status = "running"
    container.attrs = {"State": {"Running": True, "ExitCode": 0}}
    mock_docker_client.return_value.containers.get.return_value = container

    state = await docker_backend.inspect("container-id")

    assert state is not None
    assert state.running
    assert not state.terminal


@pytest.mark.asyncio
async def test_inspect_exited(docker_backend: DockerBackend, mock_docker_client: Any) -> None:
    container = MagicMock()
    container.status = "exited"
    container.attrs = {"State": {"Running": False, "ExitCode": 1}}
    mock_docker_client.return_value.containers.get.return_value = container

    state = await docker_backend.inspect("container-id")

    assert state is not None
    assert state.terminal
    assert state.exit_code == 1


@pytest.mark.asyncio
async def test_inspect_missing(docker_backend: DockerBackend, mock_docker_client: Any) -> None:
    mock_docker_client.return_value.containers.get.side_effect = NotFound("gone")
    assert await docker_backend.inspect("container-id") is None


@pytest.mark.asyncio
async def test_inspect_daemon_error(docker_backend: DockerBackend, mock_docker_client: Any) -> None:
    mock_docker_client.return_value.containers.get.side_effect = APIError("500 Server Error")

    with pytest.raises(BuildFault) as exc_info:
        await docker_backend.inspect("container-id")
    assert "500 Server Error" in exc_info.value.diagnostics


@pytest.mark.asyncio
async def test_logs(docker_backend: DockerBackend, mock_docker_client: Any) -> None:
    container = MagicMock()
    container.logs.return_value = b"SyntaxError: invalid syntax\n"
    mock_docker_client.return_value.containers.get.return_value = container

    assert await docker_backend.logs("container-id") == "SyntaxError: invalid syntax\n"


@pytest.mark.asyncio
async def test_logs_unavailable(docker_backend: DockerBackend, mock_docker_client: Any) -> None:
    mock_docker_client.return_value.containers.get.side_effect = NotFound("gone")
    assert await docker_backend.logs("container-id") == ""


@pytest.mark.asyncio
async def test_stop_missing_container(docker_backend: DockerBackend, mock_docker_client: Any) -> None:
    mock_docker_client.return_value.containers.get.side_effect = NotFound("gone")
    await docker_backend.stop("container-id")


@pytest.mark.asyncio
async def test_stop_daemon_error(docker_backend: DockerBackend, mock_docker_client: Any) -> None:
    container = MagicMock()
    container.remove.side_effect = APIError("removal already in progress")
    mock_docker_client.return_value.containers.get.return_value = container

    with pytest.raises(BuildFault):
        await docker_backend.stop("container-id")


@pytest.mark.asyncio
async def test_remove_image_missing(docker_backend: DockerBackend, mock_docker_client: Any) -> None:
    mock_docker_client.return_value.images.remove.side_effect = ImageNotFound("gone")
    await docker_backend.remove_image("sha256:abc")


def test_factory_selects_backend(mock_docker_client: Any, config: FunctionConfig) -> None:
    assert isinstance(BackendFactory.get_backend(config), SubprocessBackend)

    config.runtime = "docker"
    backend = BackendFactory.get_backend(config)
    assert isinstance(backend, DockerBackend)
    assert backend.container_port == config.container_port
    assert backend.network == "llmfunction-sandbox"

    config.docker_network = ""
    assert BackendFactory.get_backend(config).network is None
