from leadflow.services.result import Result
from leadflow.services.state_machine import (
    ConversationStage,
    DocStage,
    InvalidTransitionError,
    SetDocStage,
    SetHandoffFlag,
    SetSimulatorStep,
    SetStage,
    SimulatorStep,
)

__all__ = [
    "Result",
    "ConversationStage",
    "DocStage",
    "InvalidTransitionError",
    "SetStage",
    "SetDocStage",
    "SetHandoffFlag",
    "SetSimulatorStep",
    "SimulatorStep",
]
