# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_llmfunction

from typing import Any

import httpx
from pydantic import ValidationError

from coreason_llmfunction.exceptions import NetworkFault
from coreason_llmfunction.models import RuntimeFault, SandboxInstance
from coreason_llmfunction.utils.logger import logger


class InvocationClient:
    """Sends input payloads to a running sandbox."""

    def __init__(self, timeout: float = 5.0, client: httpx.AsyncClient | None = None):
        """Initializes the InvocationClient.

        Args:
            timeout: Request timeout in seconds; sandboxes are local and answer quickly.
            client: Optional httpx.AsyncClient for connection pooling.
        """
        self._internal_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._internal_client:
            await self._client.aclose()

    async def invoke(self, instance: SandboxInstance, payload: dict[str, Any]) -> Any | RuntimeFault:
        """Run the sandboxed artifact on payload.

        Args:
            instance: A ready sandbox.
            payload: The input object.

        Returns:
            The result JSON, or a RuntimeFault when the artifact raised.

        Raises:
            NetworkFault: On connection failure, timeout or an unexpected response.
        """
        url = f"{instance.base_url}/run"
        try:
            response = await self._client.post(url, json={"input": payload})
        except httpx.HTTPError as e:
            logger.error(f"Sandbox call to {url} failed: {e!r}")
            raise NetworkFault(f"Sandbox call failed: {e!r}", url) from e

        try:
            body = response.json()
        except ValueError as e:
            raise NetworkFault(
                f"Sandbox answered {response.status_code} with a non-JSON body: {response.text[:200]}", url
            ) from e

        if response.status_code == 200:
            return body

        if response.status_code == 500 and isinstance(body, dict):
            try:
                fault = RuntimeFault.model_validate(body)
            except ValidationError:
                pass
            else:
                logger.info(f"Artifact for {instance.function_id[:12]} raised: {fault.error}")
                return fault

        raise NetworkFault(f"Sandbox answered {response.status_code}: {response.text[:200]}", url)
