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

from coreason_llmfunction.exceptions import ParseFault
from coreason_llmfunction.llm import LLMClient
from coreason_llmfunction.utils.logger import logger


class DirectInferenceClient:
    """Executes a function by asking the model on every call (no generated code)."""

    def __init__(self, llm: LLMClient):
        self.llm = llm

    async def infer(self, prompt: str, input_data: dict[str, Any], output_shape_hint: dict[str, Any]) -> Any:
        """Run prompt on input_data and return the JSON the model produced.

        Args:
            prompt: The function's prompt.
            input_data: The input object.
            output_shape_hint: An example of the desired output shape.

        Returns:
            The extracted JSON value (an object, or a list when the reply held several).

        Raises:
            ValidationFault: If the input is too large to send.
            NetworkFault: If the model could not be reached.
            ParseFault: If no JSON could be extracted from the reply.
        """
        result = await self.llm.single_message(prompt, input_data, output_shape_hint)
        if not isinstance(result, (dict, list)):
            raise ParseFault("Model reply was JSON but not an object", raw=repr(result))
        logger.debug("Direct inference completed")
        return result
