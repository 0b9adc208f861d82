"""
Data models for functions, sandboxes and test runs.
"""

from .function import Example, FunctionSpec, GeneratedArtifact
from .results import Refinement, RefinementAnalysis, TestResult, TestRunSummary
from .sandbox import RuntimeFault, RuntimeState, SandboxInstance, SandboxStatus

__all__ = [
    "Example",
    "FunctionSpec",
    "GeneratedArtifact",
    "Refinement",
    "RefinementAnalysis",
    "RuntimeFault",
    "RuntimeState",
    "SandboxInstance",
    "SandboxStatus",
    "TestResult",
    "TestRunSummary",
]
