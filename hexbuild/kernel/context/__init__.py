"""Execution context for pipeline runs."""

from hexbuild.kernel.context.execution_context import DECLARED_WORKING_DIR, ExecutionContext

__all__ = ["DECLARED_WORKING_DIR", "ExecutionContext"]
