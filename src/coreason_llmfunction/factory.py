# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_llmfunction

from coreason_llmfunction.config import FunctionConfig
from coreason_llmfunction.runtime import IsolationBackend
from coreason_llmfunction.runtimes.docker import DockerBackend
from coreason_llmfunction.runtimes.local import SubprocessBackend


class BackendFactory:
    """
    Factory to create IsolationBackend instances based on configuration.
    """

    @staticmethod
    def get_backend(config: FunctionConfig) -> IsolationBackend:
        """
        Returns an instance of the configured IsolationBackend.
        """
        if config.runtime == "docker":
            return DockerBackend(
                container_port=config.container_port,
                cpu_limit=config.cpu_limit,
                mem_limit=config.mem_limit,
                network=config.docker_network or None,
            )
        elif config.runtime == "subprocess":
            return SubprocessBackend()
        else:
            # This should be unreachable due to Pydantic validation, but for safety:
            raise ValueError(f"Unknown runtime: {config.runtime}")  # pragma: no cover
