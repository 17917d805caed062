"""Inference client and local llama-server supervision."""

from __future__ import annotations

from core.llm.client import (
    InferenceClient,
    InferenceError,
    InferenceStatusError,
    InferenceTimeoutError,
    MalformedResponseError,
)
from core.llm.supervisor import (
    ChildExitedUnexpectedlyError,
    ChildSpawnFailedError,
    ServerSupervisor,
    SupervisorError,
    SupervisorState,
)

__all__: list[str] = [
    "ChildExitedUnexpectedlyError",
    "ChildSpawnFailedError",
    "InferenceClient",
    "InferenceError",
    "InferenceStatusError",
    "InferenceTimeoutError",
    "MalformedResponseError",
    "ServerSupervisor",
    "SupervisorError",
    "SupervisorState",
]
