"""arena.core パッケージの公開 API。"""

from .credentials import (  # noqa: F401
    EnvSecretStore,
    MappingSecretStore,
    resolve_credential,
    SecretStore,
)
from .errors import (  # noqa: F401
    AllTargetsFailed,
    ArenaError,
    ConfigError,
    CredentialUnavailable,
    EmptySelection,
    ExecutionError,
    MissingVariable,
    PersistenceError,
    PreflightError,
    RunInProgress,
    SessionStateError,
    TargetError,
    TargetNotSelected,
    UnknownTarget,
    VoteNotAllowed,
)
from .execution import (  # noqa: F401
    ExecutionRequest,
    ModelExecutionClient,
    ModelExecutionService,
    OpenAICompatibleService,
    SimulatedExecutionService,
)
from .feedback import FeedbackController  # noqa: F401
from .loader import (  # noqa: F401
    load_arena_settings,
    load_model_catalog,
    load_prompt_runtime,
    load_provider_records,
)
from .models import (  # noqa: F401
    ArenaSettings,
    BattleOutput,
    BattleRecord,
    ExecutionMetadata,
    ExecutionResult,
    ModelTarget,
    PromptMessage,
    PromptParameters,
    PromptRuntime,
    ProviderRecord,
)
from .observability import (  # noqa: F401
    BoundLogger,
    CompositeLogger,
    EventLogger,
    JsonlLogger,
    NullLogger,
    StdLogger,
)
from .orchestrator import ArenaSession  # noqa: F401
from .retry import RetryController  # noqa: F401
from .reveal import RevealEngine, reveal_interval_ms  # noqa: F401
from .scheduler import BatchPolicy, BatchScheduler, PersistContext, RunReport  # noqa: F401
from .session_state import SessionState  # noqa: F401
from .settlement import TargetOutcome, TargetRunner  # noqa: F401
from .statistics import ArenaStatistics, compute_statistics  # noqa: F401
from .store import BattleStore, InMemoryBattleStore, JsonBattleStore  # noqa: F401
from .targets import TargetSet  # noqa: F401

__all__ = [
    "AllTargetsFailed",
    "ArenaError",
    "ArenaSession",
    "ArenaSettings",
    "ArenaStatistics",
    "BatchPolicy",
    "BatchScheduler",
    "BattleOutput",
    "BattleRecord",
    "BattleStore",
    "BoundLogger",
    "CompositeLogger",
    "ConfigError",
    "CredentialUnavailable",
    "EmptySelection",
    "EnvSecretStore",
    "EventLogger",
    "ExecutionError",
    "ExecutionMetadata",
    "ExecutionRequest",
    "ExecutionResult",
    "FeedbackController",
    "InMemoryBattleStore",
    "JsonBattleStore",
    "JsonlLogger",
    "MappingSecretStore",
    "MissingVariable",
    "ModelExecutionClient",
    "ModelExecutionService",
    "ModelTarget",
    "NullLogger",
    "OpenAICompatibleService",
    "PersistContext",
    "PersistenceError",
    "PreflightError",
    "PromptMessage",
    "PromptParameters",
    "PromptRuntime",
    "ProviderRecord",
    "RetryController",
    "RevealEngine",
    "RunInProgress",
    "RunReport",
    "SecretStore",
    "SessionState",
    "SessionStateError",
    "SimulatedExecutionService",
    "StdLogger",
    "TargetError",
    "TargetNotSelected",
    "TargetOutcome",
    "TargetRunner",
    "TargetSet",
    "UnknownTarget",
    "VoteNotAllowed",
    "compute_statistics",
    "load_arena_settings",
    "load_model_catalog",
    "load_prompt_runtime",
    "load_provider_records",
    "resolve_credential",
    "reveal_interval_ms",
]
