"""Model execution boundary."""

from .client import ModelExecutionClient
from .endpoints import DEFAULT_ENDPOINTS, resolve_endpoint
from .service import (
    ExecutionRequest,
    ModelExecutionService,
    OpenAICompatibleService,
    SimulatedExecutionService,
)

__all__ = [
    "DEFAULT_ENDPOINTS",
    "ExecutionRequest",
    "ModelExecutionClient",
    "ModelExecutionService",
    "OpenAICompatibleService",
    "SimulatedExecutionService",
    "resolve_endpoint",
]
