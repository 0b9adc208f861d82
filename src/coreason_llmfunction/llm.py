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
from typing import Any

import httpx

from coreason_llmfunction.config import FunctionConfig
from coreason_llmfunction.exceptions import NetworkFault, ParseFault, ValidationFault
from coreason_llmfunction.json_extract import extract_json
from coreason_llmfunction.utils.logger import logger

SINGLE_MESSAGE_TEMPLATE = """
You are part of a program, try to solve the task specified in the Prompt as if you are a
function that should create a JSON object that matches what is specified as ExampleOutput.
Do not discuss the prompt, just solve the task. Your response is only the JSON object.
Make sure to create a correct JSON object that matches what is specified as ExampleOutput.

 * Prompt:
{prompt}

 * Input:
{input}

 * ExampleOutput:
{example_output}"""


class LLMClient:
    """Client for an OpenAI-compatible chat completions endpoint.

    Every request is a single system-role message and every reply is expected
    to contain one JSON object, extracted with :func:`extract_json`.
    """

    def __init__(self, config: FunctionConfig | None = None, client: httpx.AsyncClient | None = None):
        """Initializes the LLMClient.

        Args:
            config: Configuration holding endpoint, credentials and model.
            client: Optional httpx.AsyncClient for connection pooling.
        """
        self.config = config or FunctionConfig()
        self._internal_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.config.llm_timeout)

    async def aclose(self) -> None:
        if self._internal_client:
            await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.llm_api_key:
            headers["Authorization"] = f"Bearer {self.config.llm_api_key}"
        if self.config.llm_organization:
            headers["OpenAI-Organization"] = self.config.llm_organization
        return headers

    def build_message(self, prompt: str, input_data: Any, example_output: Any) -> str:
        """Render the system message for one call.

        Raises:
            ValidationFault: If the serialized input exceeds ``max_input_chars``.
        """
        input_json = json.dumps(input_data, indent=2, ensure_ascii=False)
        if len(input_json) > self.config.max_input_chars:
            raise ValidationFault(
                f"Input too large: {len(input_json)} characters",
                f"limit {self.config.max_input_chars}",
            )

        return SINGLE_MESSAGE_TEMPLATE.format(
            prompt=prompt,
            input=input_json,
            example_output=json.dumps(example_output, indent=2, ensure_ascii=False),
        )

    async def complete(self, message: str) -> str:
        """Send one system message and return the reply text.

        Raises:
            NetworkFault: On connection errors, timeouts or non-2xx answers.
            ParseFault: If the response envelope has no message content.
        """
        query = {
            "model": self.config.llm_model,
            "messages": [{"role": "system", "content": message}],
        }
        url = self.config.llm_url
        logger.debug(f"Sending {len(message)} chars to model {self.config.llm_model}")

        try:
            response = await self._client.post(url, json=query, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Model endpoint answered {e.response.status_code}")
            raise NetworkFault(f"Model endpoint returned {e.response.status_code}: {e.response.text[:500]}", url) from e
        except httpx.HTTPError as e:
            logger.error(f"Model request failed: {e!r}")
            raise NetworkFault(f"Model request failed: {e!r}", url) from e

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ParseFault("Unexpected model response envelope", raw=response.text) from e

        if not isinstance(content, str):
            raise ParseFault("Model response content is not text", raw=response.text)
        return content

    async def single_message(self, prompt: str, input_data: Any, example_output: Any) -> Any:
        """Ask the model to act as a function and return the JSON it produced."""
        message = self.build_message(prompt, input_data, example_output)
        answer = await self.complete(message)
        return extract_json(answer)
