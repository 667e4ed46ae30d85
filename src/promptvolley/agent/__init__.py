"""
agent/ — Per-turn orchestration for promptvolley

Public API:
    from promptvolley.agent import VolleyOrchestrator, ParameterState, adjust
"""

from promptvolley.agent.state import (
    ParameterPolicy,
    ParameterState,
    SessionHistory,
    Volley,
    starting_state,
)
from promptvolley.agent.rules import Adjustment, ChangeDescription, adjust
from promptvolley.agent.response_assembler import assemble_summary, unique_changes
from promptvolley.agent.updates import Notify, TurnUpdate, UpdateKind
from promptvolley.agent.orchestrator import VolleyOrchestrator

__all__ = [
    "ParameterPolicy",
    "ParameterState",
    "SessionHistory",
    "Volley",
    "starting_state",
    "Adjustment",
    "ChangeDescription",
    "adjust",
    "assemble_summary",
    "unique_changes",
    "Notify",
    "TurnUpdate",
    "UpdateKind",
    "VolleyOrchestrator",
]
