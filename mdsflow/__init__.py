"""mdsflow: resumable workflow orchestration for agent menus."""

from .config import MdsflowConfig, load_config
from .context import ExecutionContext
from .contracts import AgentDefinition, StepSpec, WorkflowDefinition
from .definitions import WorkflowCatalog, load_agent, load_workflow
from .engine import EventStream, ExecutionResult, StepExecutor, TransitionTable, WorkflowEngine
from .hooks import HookRegistry
from .persistence import ExecutionRecord, ExecutionStatus, get_store
from .router import CommandRouter

__version__ = "0.1.0"
__all__ = [
    "AgentDefinition",
    "CommandRouter",
    "EventStream",
    "ExecutionContext",
    "ExecutionRecord",
    "ExecutionResult",
    "ExecutionStatus",
    "HookRegistry",
    "MdsflowConfig",
    "StepExecutor",
    "StepSpec",
    "TransitionTable",
    "WorkflowCatalog",
    "WorkflowDefinition",
    "WorkflowEngine",
    "get_store",
    "load_agent",
    "load_config",
    "load_workflow",
]
