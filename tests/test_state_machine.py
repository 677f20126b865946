import pytest

from leadflow.models import Lead
from leadflow.services.state_machine import (
    ConversationStage,
    DocStage,
    InvalidCommandError,
    InvalidTransitionError,
    SetDocStage,
    SetHandoffFlag,
    SetSimulatorStep,
    SetStage,
    SimulatorStep,
    apply_commands,
    can_transition,
    current_stage,
    transition,
)


def _lead(stage=ConversationStage.AWAITING_CHOICE):
    return Lead(
        contact_key="351911111111",
        stage=stage.value,
        doc_stage=DocStage.AWAITING_DOCS.value,
        wants_human=False,
    )


class TestValidTransitions:
    def test_not_started_to_welcome(self):
        assert transition(ConversationStage.NOT_STARTED, ConversationStage.WELCOME_SEQUENCE) == (
            ConversationStage.WELCOME_SEQUENCE
        )

    def test_not_started_to_awaiting_choice(self):
        assert can_transition(ConversationStage.NOT_STARTED, ConversationStage.AWAITING_CHOICE)

    def test_welcome_to_awaiting_choice(self):
        assert can_transition(ConversationStage.WELCOME_SEQUENCE, ConversationStage.AWAITING_CHOICE)

    def test_active_stages_are_fully_connected(self):
        active = [
            ConversationStage.AWAITING_CHOICE,
            ConversationStage.ANSWERING_QUESTIONS,
            ConversationStage.WITH_HUMAN,
            ConversationStage.DOCUMENT_COLLECTION,
        ]
        for source in active:
            for target in active:
                assert can_transition(source, target)

    def test_same_stage_is_allowed(self):
        assert transition(ConversationStage.WITH_HUMAN, ConversationStage.WITH_HUMAN) == ConversationStage.WITH_HUMAN


class TestInvalidTransitions:
    def test_not_started_to_answering(self):
        with pytest.raises(InvalidTransitionError):
            transition(ConversationStage.NOT_STARTED, ConversationStage.ANSWERING_QUESTIONS)

    def test_back_to_not_started(self):
        with pytest.raises(InvalidTransitionError):
            transition(ConversationStage.AWAITING_CHOICE, ConversationStage.NOT_STARTED)

    def test_back_to_welcome(self):
        assert not can_transition(ConversationStage.AWAITING_CHOICE, ConversationStage.WELCOME_SEQUENCE)

    def test_welcome_to_documents(self):
        assert not can_transition(ConversationStage.WELCOME_SEQUENCE, ConversationStage.DOCUMENT_COLLECTION)


class TestCurrentStage:
    def test_unknown_value_reads_as_not_started(self):
        lead = _lead()
        lead.stage = "legacy_value"
        assert current_stage(lead) == ConversationStage.NOT_STARTED


class TestApplyCommands:
    def test_returns_only_real_changes(self):
        lead = _lead()
        changes = apply_commands(
            lead,
            SetStage(ConversationStage.WITH_HUMAN),
            SetHandoffFlag(True),
            SetDocStage(DocStage.AWAITING_DOCS),
        )
        assert changes == {
            "stage": ("awaiting_choice", "with_human"),
            "wants_human": (False, True),
        }
        assert lead.updated_at is not None

    def test_simulator_cursor_set_and_cleared(self):
        lead = _lead()
        apply_commands(lead, SetSimulatorStep(SimulatorStep.AGE))
        assert lead.sim_step == "age"
        apply_commands(lead, SetSimulatorStep(None))
        assert lead.sim_step is None

    def test_invalid_transition_leaves_lead_untouched(self):
        lead = _lead(ConversationStage.NOT_STARTED)
        with pytest.raises(InvalidTransitionError):
            apply_commands(lead, SetHandoffFlag(True), SetStage(ConversationStage.DOCUMENT_COLLECTION))
        assert lead.wants_human is False
        assert lead.stage == "not_started"

    def test_malformed_command_rejected(self):
        lead = _lead()
        with pytest.raises(InvalidCommandError):
            apply_commands(lead, SetStage("with_human"))
        with pytest.raises(InvalidCommandError):
            apply_commands(lead, SetHandoffFlag("yes"))
        with pytest.raises(InvalidCommandError):
            apply_commands(lead, "stage=with_human")
