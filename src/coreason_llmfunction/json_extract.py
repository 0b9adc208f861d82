# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_llmfunction

"""Extraction of JSON from free-form model replies.

Strategies are tried in order and the first one that succeeds wins:

1. ``strict_parse``: the whole reply is JSON.
2. ``fence_strip``: the reply is wrapped in a markdown fence or prefixed
   with a bare ``json`` language tag.
3. ``brace_scan_repair``: balanced ``{...}`` substrings are cut out of the
   text, repaired and parsed. One object is returned as is, several as a list.
"""

import json
import re
from typing import Any, Callable

from coreason_llmfunction.exceptions import ParseFault
from coreason_llmfunction.utils.logger import logger

Strategy = Callable[[str], Any]

_FENCE_RE = re.compile(r"^\s*```[\w+-]*[ \t]*\r?\n?(?P<body>.*?)\r?\n?```\s*$", re.DOTALL)
_TAG_RE = re.compile(r"^\s*json\s*\r?\n", re.IGNORECASE)
_TRAILING_COMMA_RE = re.compile(r",\s*(?=[}\]])")
_SMART_QUOTES = str.maketrans({"“": '"', "”": '"', "‘": "'", "’": "'"})


def strict_parse(text: str) -> Any:
    return json.loads(text.strip())


def fence_strip(text: str) -> Any:
    match = _FENCE_RE.match(text)
    if match:
        return json.loads(match.group("body"))
    tagged = _TAG_RE.match(text)
    if tagged:
        return json.loads(text[tagged.end() :])
    raise ValueError("no fence or language tag")


def scan_objects(text: str) -> list[str]:
    """Return every top-level balanced ``{...}`` substring, ignoring braces inside strings."""
    found: list[str] = []
    depth = 0
    start = -1
    in_string = False
    escaped = False

    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"' and depth > 0:
            in_string = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                found.append(text[start : i + 1])

    return found


def repair(candidate: str) -> str:
    """Fix the artifacts models commonly leave in otherwise valid JSON.

    Raw line breaks and tabs inside string literals are escaped, typographic
    quotes are normalized and trailing commas are dropped.
    """
    candidate = candidate.translate(_SMART_QUOTES)

    out: list[str] = []
    in_string = False
    escaped = False
    for ch in candidate:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            elif ch == "\n":
                out.append("\\n")
                continue
            elif ch == "\r":
                continue
            elif ch == "\t":
                out.append("\\t")
                continue
        elif ch == '"':
            in_string = True
        out.append(ch)

    return _TRAILING_COMMA_RE.sub("", "".join(out))


def brace_scan_repair(text: str) -> Any:
    candidates = scan_objects(text)
    if not candidates:
        raise ValueError("no JSON object found")

    results = []
    for candidate in candidates:
        try:
            results.append(json.loads(candidate))
        except json.JSONDecodeError:
            results.append(json.loads(repair(candidate)))

    if len(results) == 1:
        return results[0]
    return results


STRATEGIES: list[tuple[str, Strategy]] = [
    ("strict_parse", strict_parse),
    ("fence_strip", fence_strip),
    ("brace_scan_repair", brace_scan_repair),
]


def extract_json(text: str) -> Any:
    """Run the strategy chain over text.

    Raises:
        ParseFault: If no strategy produces JSON.
    """
    for name, strategy in STRATEGIES:
        try:
            value = strategy(text)
        except ValueError:
            continue
        logger.debug(f"Extracted JSON from model reply using {name}")
        return value

    logger.warning(f"Could not extract JSON from model reply ({len(text)} chars)")
    raise ParseFault("Model response did not contain parseable JSON", raw=text)
