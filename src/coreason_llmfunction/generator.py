# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_llmfunction

import re
from typing import Any

from coreason_llmfunction.exceptions import ValidationFault
from coreason_llmfunction.llm import LLMClient
from coreason_llmfunction.models import Example
from coreason_llmfunction.utils.logger import logger

INPUT_VARIABLE = "input"
RESULT_VARIABLE = "result"

GENERATION_PROMPT = """
You are a code generator. Your task is to generate Python code that implements the function
described in the Input under "prompt".

The code should:
1. Read the variable named 'input', a dict shaped like "input_format".
2. Bind the answer to a variable named 'result' with a top-level assignment ("result = ...").
3. Make 'result' a dict with the same structure as "output_format".

Rules:
- Answer with a JSON object with a single "code" field holding the code as a string.
- Write generic code that works for any input, not just the example input.
- You may build 'result' in one expression, or assign it first and fill it in later statements.
- Builtins such as len, sum, min, max, sorted, round, range and str are available, and so is
  the math module as 'math'.
- Do not import modules, print, read files or command line arguments, parse or serialize JSON,
  raise exceptions or use try/except. Input parsing and output formatting are already handled.
"""

EXAMPLE_REPLY = {"code": 'result = {\n    "sum": 10\n}'}

_RESULT_ASSIGNMENT = re.compile(rf"^{RESULT_VARIABLE}\s*(:[^=\n]+)?=(?!=)", re.MULTILINE)
_CODE_FENCE = re.compile(r"^\s*```[\w+-]*\s*\n(?P<body>.*?)\n?```\s*$", re.DOTALL)

# Constructs that could escape the intended scope or do uncontrolled I/O.
# This is a fast textual gate; the sandbox process is the actual boundary.
FORBIDDEN_CONSTRUCTS: list[tuple[str, re.Pattern[str]]] = [
    ("print", re.compile(r"\bprint\s*\(")),
    ("sys.argv", re.compile(r"\bsys\s*\.\s*argv\b")),
    ("sys", re.compile(r"\bsys\s*\.")),
    ("os", re.compile(r"\bos\s*\.")),
    ("subprocess", re.compile(r"\bsubprocess\b")),
    ("json.loads", re.compile(r"\bjson\s*\.\s*loads?\b")),
    ("json.dumps", re.compile(r"\bjson\s*\.\s*dumps?\b")),
    ("eval", re.compile(r"\beval\s*\(")),
    ("exec", re.compile(r"\bexec\s*\(")),
    ("compile", re.compile(r"\bcompile\s*\(")),
    ("raise", re.compile(r"\braise\b")),
    ("try", re.compile(r"^\s*try\s*:", re.MULTILINE)),
    ("except", re.compile(r"\bexcept\b")),
    ("import", re.compile(r"\bimport\b")),
    ("dunder", re.compile(r"__\w+")),
    ("open", re.compile(r"\bopen\s*\(")),
    ("input()", re.compile(r"\binput\s*\(")),
    ("introspection", re.compile(r"\b(globals|locals|vars|getattr|setattr|delattr)\s*\(")),
    ("exit", re.compile(r"\b(exit|quit|breakpoint)\s*\(")),
]


def _excerpt(code: str, position: int) -> str:
    start = code.rfind("\n", 0, position) + 1
    end = code.find("\n", position)
    return code[start : end if end != -1 else len(code)].strip()


def validate_code(code: str) -> str:
    """Statically check generated code.

    Syntax is deliberately not checked here: malformed code is left for the
    sandbox to reject at load time.

    Raises:
        ValidationFault: If 'result' is never assigned or a forbidden construct is present.
    """
    if not code.strip():
        raise ValidationFault("Generated code is empty")

    if not _RESULT_ASSIGNMENT.search(code):
        raise ValidationFault(f"Generated code must assign a top-level '{RESULT_VARIABLE}' variable")

    for construct, pattern in FORBIDDEN_CONSTRUCTS:
        match = pattern.search(code)
        if match:
            excerpt = _excerpt(code, match.start())
            logger.warning(f"Generated code rejected, forbidden construct {construct!r}: {excerpt}")
            raise ValidationFault(f"Generated code contains forbidden construct: {construct}", excerpt)

    return code


def _code_from_reply(reply: Any) -> str:
    code = reply.get("code") if isinstance(reply, dict) else reply
    if not isinstance(code, str):
        raise ValidationFault("Model reply did not contain a 'code' string", repr(reply)[:500])

    fenced = _CODE_FENCE.match(code)
    if fenced:
        code = fenced.group("body")
    return code.strip("\n")


class CodeGenerator:
    """Turns a prompt and its examples into validated Python source."""

    def __init__(self, llm: LLMClient):
        self.llm = llm

    async def generate(self, prompt: str, examples: list[Example]) -> str:
        """Ask the model for code implementing prompt and validate it.

        The first example's input and output are sent as a format hint.

        Raises:
            ValidationFault: If there are no examples or the code fails the static gate.
            NetworkFault: If the model could not be reached.
            ParseFault: If the reply was not JSON.
        """
        if not examples:
            raise ValidationFault("At least one example is required to generate code")

        request = {
            "prompt": prompt,
            "input_format": examples[0].input,
            "output_format": examples[0].output,
        }
        reply = await self.llm.single_message(GENERATION_PROMPT, request, EXAMPLE_REPLY)
        code = _code_from_reply(reply)

        validate_code(code)
        logger.info(f"Generated {len(code.splitlines())} lines of code")
        return code
