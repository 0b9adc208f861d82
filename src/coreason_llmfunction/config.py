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
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FunctionConfig(BaseSettings):
    """
    Configuration for model access and the sandbox runtime.
    """

    runtime: Literal["docker", "subprocess"] = "docker"
    docker_image: str = "python:3.12-slim"
    mem_limit: str = "256m"
    cpu_limit: float = 0.5

    # On-disk state: function documents, artifacts and sandbox records
    state_dir: Path = Path("data")

    port_range_start: int = 41000
    port_range_end: int = 41999
    container_port: int = 8080
    # Internal bridge network for containers; empty publishes the port on 127.0.0.1 instead
    docker_network: str | None = "llmfunction-sandbox"

    # Bounded readiness polling
    poll_attempts: int = 30
    poll_interval: float = 0.5
    sandbox_timeout: float = 5.0

    # OpenAI-compatible chat completions endpoint
    llm_url: str = "https://api.openai.com/v1/chat/completions"
    llm_api_key: str | None = None
    llm_organization: str | None = None
    llm_model: str = "gpt-4o-mini"
    llm_timeout: float = 600.0
    max_input_chars: int = 16000

    model_config = SettingsConfigDict(
        env_prefix="COREASON_LLMFUNCTION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _check_ranges(self) -> "FunctionConfig":
        if self.port_range_start > self.port_range_end:
            raise ValueError("port_range_start must not exceed port_range_end")
        if self.poll_attempts < 1:
            raise ValueError("poll_attempts must be at least 1")
        return self
