# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_llmfunction

import hashlib
import json
from typing import Any


def canonical_json(data: Any) -> str:
    """Serialize data deterministically (sorted keys, compact separators)."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def content_hash(data: Any) -> str:
    """SHA-256 hex digest of the canonical JSON form of data."""
    return hashlib.sha256(canonical_json(data).encode("utf-8")).hexdigest()


def fingerprint(source_code: str) -> str:
    """SHA-256 hex digest of generated source code.

    Used to decide whether a running sandbox still matches the code that
    should be executing in it.
    """
    return hashlib.sha256(source_code.encode("utf-8")).hexdigest()
