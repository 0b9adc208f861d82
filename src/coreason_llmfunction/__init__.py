# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_llmfunction

"""
coreason-llmfunction
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .config import FunctionConfig
from .exceptions import (
    BuildFault,
    CrashFault,
    LLMFunctionError,
    NetworkFault,
    NotFoundFault,
    ParseFault,
    ValidationFault,
)
from .manager import SandboxManager
from .models import Example, FunctionSpec, RuntimeFault, TestRunSummary
from .runtime import IsolationBackend
from .service import LLMFunctionService

__all__ = [
    "FunctionConfig",
    "LLMFunctionService",
    "SandboxManager",
    "IsolationBackend",
    "Example",
    "FunctionSpec",
    "RuntimeFault",
    "TestRunSummary",
    "LLMFunctionError",
    "ValidationFault",
    "NotFoundFault",
    "BuildFault",
    "CrashFault",
    "NetworkFault",
    "ParseFault",
]
