"""Request execution pipeline."""

from blink.execution.engine import ExecutionEngine, build_service_engine
from blink.execution.types import (
    ExecuteInput,
    ExecuteOverrides,
    ExecutionResult,
    RequestDescriptor,
)

__all__ = [
    "ExecuteInput",
    "ExecuteOverrides",
    "ExecutionEngine",
    "ExecutionResult",
    "RequestDescriptor",
    "build_service_engine",
]
