"""Operation executors that replay queued ride operations."""

from .base import ExecutionResult, OperationExecutor
from .mock import MockExecutor

__all__ = ["ExecutionResult", "OperationExecutor", "MockExecutor"]
