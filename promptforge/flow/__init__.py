"""Conversation flow: state, engines and the task-flow controller."""

from .clarifying import ClarifyingFlowEngine
from .commands import CommandRegistry, CommandRouter
from .mode import ModeController
from .preferences import PreferenceFlowEngine
from .snapshots import SnapshotController
from .state import ConversationState, Phase, Snapshot, initial_state
from .task_flow import TaskFlowController

__all__ = [
    "ClarifyingFlowEngine",
    "CommandRegistry",
    "CommandRouter",
    "ConversationState",
    "ModeController",
    "Phase",
    "PreferenceFlowEngine",
    "Snapshot",
    "SnapshotController",
    "TaskFlowController",
    "initial_state",
]
