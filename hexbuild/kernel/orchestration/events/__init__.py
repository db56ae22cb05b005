"""Lifecycle events emitted by the executor to observers."""

from collections.abc import Awaitable, Callable

from .events import (
    Event,
    PipelineCompleted,
    PipelineStarted,
    StepCompleted,
    StepFailed,
    StepStarted,
)

# Observers are plain callables; coroutine functions are awaited
Observer = Callable[[Event], None] | Callable[[Event], Awaitable[None]]

STEP_EVENTS = (StepStarted, StepCompleted, StepFailed)
PIPELINE_EVENTS = (PipelineStarted, PipelineCompleted)
ALL_EVENTS = PIPELINE_EVENTS + STEP_EVENTS

__all__ = [
    "ALL_EVENTS",
    "Event",
    "Observer",
    "PIPELINE_EVENTS",
    "PipelineCompleted",
    "PipelineStarted",
    "STEP_EVENTS",
    "StepCompleted",
    "StepFailed",
    "StepStarted",
]
