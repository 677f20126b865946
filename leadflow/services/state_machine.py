from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union


class ConversationStage(str, Enum):
    NOT_STARTED = "not_started"
    WELCOME_SEQUENCE = "welcome_sequence"
    AWAITING_CHOICE = "awaiting_choice"
    ANSWERING_QUESTIONS = "answering_questions"
    WITH_HUMAN = "with_human"
    DOCUMENT_COLLECTION = "document_collection"


class DocStage(str, Enum):
    AWAITING_DOCS = "awaiting_docs"
    DOCS_RECEIVED = "docs_received"


class SimulatorStep(str, Enum):
    AGE = "age"
    PROPERTY_VALUE = "property_value"
    TERM = "term"
    DOWN_PAYMENT = "down_payment"


_ACTIVE_STAGES = [
    ConversationStage.AWAITING_CHOICE,
    ConversationStage.ANSWERING_QUESTIONS,
    ConversationStage.WITH_HUMAN,
    ConversationStage.DOCUMENT_COLLECTION,
]

VALID_TRANSITIONS = {
    ConversationStage.NOT_STARTED: [ConversationStage.WELCOME_SEQUENCE, ConversationStage.AWAITING_CHOICE],
    ConversationStage.WELCOME_SEQUENCE: [ConversationStage.AWAITING_CHOICE, ConversationStage.WITH_HUMAN],
    ConversationStage.AWAITING_CHOICE: _ACTIVE_STAGES,
    ConversationStage.ANSWERING_QUESTIONS: _ACTIVE_STAGES,
    ConversationStage.WITH_HUMAN: _ACTIVE_STAGES,
    ConversationStage.DOCUMENT_COLLECTION: _ACTIVE_STAGES,
}


class InvalidTransitionError(Exception):
    def __init__(self, from_stage: ConversationStage, to_stage: ConversationStage):
        self.from_stage = from_stage
        self.to_stage = to_stage
        super().__init__(f"Invalid transition: {from_stage.value} -> {to_stage.value}")


class InvalidCommandError(Exception):
    pass


@dataclass(frozen=True)
class SetStage:
    stage: ConversationStage


@dataclass(frozen=True)
class SetDocStage:
    doc_stage: DocStage


@dataclass(frozen=True)
class SetHandoffFlag:
    wants_human: bool


@dataclass(frozen=True)
class SetSimulatorStep:
    step: Optional[SimulatorStep]


StateCommand = Union[SetStage, SetDocStage, SetHandoffFlag, SetSimulatorStep]


def can_transition(from_stage: ConversationStage, to_stage: ConversationStage) -> bool:
    """Staying in the same stage is always allowed (no-op)."""
    if from_stage == to_stage:
        return True
    return to_stage in VALID_TRANSITIONS.get(from_stage, [])


def transition(from_stage: ConversationStage, to_stage: ConversationStage) -> ConversationStage:
    """Validate a stage change. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_stage, to_stage):
        raise InvalidTransitionError(from_stage, to_stage)
    return to_stage


def current_stage(lead) -> ConversationStage:
    try:
        return ConversationStage(lead.stage)
    except ValueError:
        return ConversationStage.NOT_STARTED


def validate_command(command: StateCommand) -> None:
    if isinstance(command, SetStage):
        if not isinstance(command.stage, ConversationStage):
            raise InvalidCommandError(f"SetStage expects ConversationStage, got {command.stage!r}")
    elif isinstance(command, SetDocStage):
        if not isinstance(command.doc_stage, DocStage):
            raise InvalidCommandError(f"SetDocStage expects DocStage, got {command.doc_stage!r}")
    elif isinstance(command, SetHandoffFlag):
        if not isinstance(command.wants_human, bool):
            raise InvalidCommandError(f"SetHandoffFlag expects bool, got {command.wants_human!r}")
    elif isinstance(command, SetSimulatorStep):
        if command.step is not None and not isinstance(command.step, SimulatorStep):
            raise InvalidCommandError(f"SetSimulatorStep expects SimulatorStep, got {command.step!r}")
    else:
        raise InvalidCommandError(f"Unknown state command {command!r}")


def apply_commands(lead, *commands: StateCommand) -> dict:
    """Apply state commands to a lead row. Returns {field: (old, new)} of real changes.

    All commands are validated before any field is touched.
    """
    for command in commands:
        validate_command(command)
        if isinstance(command, SetStage):
            transition(current_stage(lead), command.stage)

    changes = {}

    def _set(field: str, value) -> None:
        old = getattr(lead, field)
        if old != value:
            setattr(lead, field, value)
            changes[field] = (old, value)

    for command in commands:
        if isinstance(command, SetStage):
            _set("stage", command.stage.value)
        elif isinstance(command, SetDocStage):
            _set("doc_stage", command.doc_stage.value)
        elif isinstance(command, SetHandoffFlag):
            _set("wants_human", command.wants_human)
        elif isinstance(command, SetSimulatorStep):
            _set("sim_step", command.step.value if command.step else None)

    if changes:
        lead.updated_at = datetime.now(timezone.utc)
    return changes
