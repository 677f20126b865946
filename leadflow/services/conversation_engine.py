"""Per-contact conversation state machine.

One inbound WhatsApp message at a time per contact: recognise triggers and
navigation commands, move the lead between stages and delegate questions to
the FAQ matcher, the simulator and the delayed queue.
"""

import asyncio
from dataclasses import dataclass
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from leadflow.config import Settings
from leadflow.logging_config import get_logger
from leadflow.models import Lead
from leadflow.schemas.webhook import InboundMessage
from leadflow.services import delayed_queue, messages, simulator
from leadflow.services.delayed_queue import DelayedStep
from leadflow.services.faq_matcher import FaqMatcher, MatchKind, MatchOutcome
from leadflow.services.intent_service import (
    Command,
    detect_command,
    first_name,
    has_completion_marker,
    is_greeting,
    matches_any,
    meaningful_length,
    normalize_phrase,
    normalize_text,
)
from leadflow.services.lead_service import create_lead, find_lead, normalize_contact_key, update_lead_state
from leadflow.services.question_buffer import BufferKey, PendingQuestionBuffer
from leadflow.services.session_store import ContactSession, SessionStore
from leadflow.services.state_machine import (
    ConversationStage,
    DocStage,
    SetDocStage,
    SetHandoffFlag,
    SetSimulatorStep,
    SetStage,
    StateCommand,
    current_stage,
)

logger = get_logger("conversation_engine")


@dataclass
class Turn:
    db: Session
    lead: Optional[Lead]
    contact_key: str
    instance: str
    text: str
    display_name: Optional[str] = None
    session: Optional[ContactSession] = None

    @property
    def buffer_key(self) -> BufferKey:
        return (self.instance, self.contact_key)


class ConversationEngine:
    def __init__(
        self,
        *,
        settings: Settings,
        session_factory: Callable[[], Session],
        sender,
        matcher: FaqMatcher,
        sessions: Optional[SessionStore] = None,
        buffer: Optional[PendingQuestionBuffer] = None,
    ):
        self.settings = settings
        self.session_factory = session_factory
        self.sender = sender
        self.matcher = matcher
        self.sessions = sessions or SessionStore(idle_ttl_seconds=settings.session_idle_ttl_seconds)
        self.buffer = buffer or PendingQuestionBuffer(
            reminder_delay_seconds=settings.question_reminder_seconds,
            on_reminder=self._send_question_reminder,
        )
        self.words = messages.handler_words(settings.human_handler_name)

    # Entry points

    async def handle(self, event: InboundMessage) -> None:
        """Process a message written by the contact. Never raises."""
        try:
            await self._process_contact_message(event)
        except Exception as e:
            logger.error(
                f"Inbound message handling failed: {e}",
                exc_info=True,
                extra={"context": {"address": event.address, "instance": event.instance}},
            )

    async def handle_operator_message(self, event: InboundMessage) -> None:
        """Process a message the human operator sent to a contact. Never raises."""
        try:
            await self._process_operator_message(event)
        except Exception as e:
            logger.error(
                f"Operator message handling failed: {e}",
                exc_info=True,
                extra={"context": {"address": event.address, "instance": event.instance}},
            )

    async def _process_contact_message(self, event: InboundMessage) -> None:
        contact_key = normalize_contact_key(event.address)
        if not contact_key or not normalize_text(event.text):
            return

        session = self.sessions.get(contact_key)
        self.buffer.attach_loop(asyncio.get_running_loop())
        async with session.lock:
            await asyncio.to_thread(self._run_contact_turn, event, contact_key, session)

    def _run_contact_turn(self, event: InboundMessage, contact_key: str, session: ContactSession) -> None:
        db = self.session_factory()
        try:
            turn = Turn(
                db=db,
                lead=find_lead(db, contact_key),
                contact_key=contact_key,
                instance=event.instance or self.settings.evolution_instance,
                text=event.text.strip(),
                display_name=event.display_name,
                session=session,
            )
            if turn.lead is None or current_stage(turn.lead) == ConversationStage.NOT_STARTED:
                self._start_conversation(turn)
            else:
                self._dispatch(turn)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    async def _process_operator_message(self, event: InboundMessage) -> None:
        phrase = normalize_phrase(event.text)
        release = phrase in {normalize_phrase(p) for p in self.settings.release_phrases()}
        pause = phrase in {normalize_phrase(p) for p in self.settings.pause_phrases()}
        contact_key = normalize_contact_key(event.address)
        if not (release or pause) or not contact_key:
            return

        session = self.sessions.get(contact_key)
        self.buffer.attach_loop(asyncio.get_running_loop())
        async with session.lock:
            await asyncio.to_thread(self._run_operator_turn, event, contact_key, session, release)

    def _run_operator_turn(
        self, event: InboundMessage, contact_key: str, session: ContactSession, release: bool
    ) -> None:
        db = self.session_factory()
        try:
            lead = find_lead(db, contact_key)
            if lead is None:
                return
            turn = Turn(
                db=db,
                lead=lead,
                contact_key=contact_key,
                instance=event.instance or lead.origin_instance or self.settings.evolution_instance,
                text=event.text.strip(),
                session=session,
            )
            stage = current_stage(lead)
            if release:
                if stage == ConversationStage.WITH_HUMAN:
                    self._transition(turn, ConversationStage.AWAITING_CHOICE)
                elif lead.wants_human:
                    update_lead_state(db, lead, SetHandoffFlag(False))
            elif stage not in (ConversationStage.WITH_HUMAN, ConversationStage.NOT_STARTED):
                self._transition(turn, ConversationStage.WITH_HUMAN, SetSimulatorStep(None))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # New contacts

    def _start_conversation(self, turn: Turn) -> None:
        if matches_any(turn.text, [self.settings.welcome_trigger_phrase]):
            stage = ConversationStage.WELCOME_SEQUENCE
        elif matches_any(turn.text, [self.settings.direct_trigger_phrase]):
            stage = ConversationStage.AWAITING_CHOICE
        else:
            logger.debug("Message from unknown contact ignored", extra={"context": {"contact_key": turn.contact_key}})
            return

        name = first_name(turn.display_name)
        if turn.lead is None:
            turn.lead = create_lead(
                turn.db,
                address=turn.contact_key,
                name=name,
                origin_instance=turn.instance,
                stage=stage,
            )
        else:
            update_lead_state(turn.db, turn.lead, SetStage(stage))
            if name and not turn.lead.name:
                turn.lead.name = name

        greeting = messages.greeting_line(turn.lead.name)
        if stage == ConversationStage.WELCOME_SEQUENCE:
            self._send(turn, messages.MSG_WELCOME_GREETING.format(greeting=greeting))
            delayed_queue.schedule(
                turn.db,
                contact_key=turn.contact_key,
                instance=turn.instance,
                sequence=delayed_queue.SEQUENCE_WELCOME,
                steps=self._welcome_steps(),
            )
        else:
            self._send(
                turn,
                messages.MSG_DIRECT_WELCOME.format(greeting=greeting, options=self._menu_options(), **self.words),
            )

    def _welcome_steps(self) -> List[DelayedStep]:
        contents = [
            (delayed_queue.KIND_TEXT, messages.MSG_WELCOME_INTRO.format(**self.words)),
            (delayed_queue.KIND_AUDIO, self.settings.welcome_audio_path),
            (delayed_queue.KIND_TEXT, messages.MSG_WELCOME_PROCESS),
            (delayed_queue.KIND_TEXT, messages.MSG_WELCOME_CTA),
        ]
        return [
            DelayedStep(offset_seconds=offset, kind=kind, payload=payload)
            for offset, (kind, payload) in zip(self.settings.welcome_offsets(), contents)
        ]

    # Known contacts

    def _dispatch(self, turn: Turn) -> None:
        lead = turn.lead
        stage = current_stage(lead)
        command = detect_command(turn.text, handler_name=self.settings.human_handler_name)
        logger.debug(
            "Inbound message",
            extra={"context": {"lead_id": lead.id, "stage": stage.value, "command": command.value if command else None}},
        )

        if lead.sim_step and stage != ConversationStage.WITH_HUMAN:
            if command is None:
                self._advance_simulator(turn)
                return
            update_lead_state(turn.db, lead, SetSimulatorStep(None))

        if stage == ConversationStage.WELCOME_SEQUENCE:
            if command == Command.START or matches_any(turn.text, [self.settings.welcome_trigger_phrase]):
                self._show_menu(turn)
            return

        if command is not None:
            self._run_command(turn, command)
            return

        if stage == ConversationStage.AWAITING_CHOICE:
            self._send(turn, messages.MSG_CHOOSE_OPTION.format(**self.words))
        elif stage == ConversationStage.ANSWERING_QUESTIONS:
            self._collect_question(turn)
        elif stage == ConversationStage.DOCUMENT_COLLECTION:
            self._send_documents_reminder(turn)
        # WITH_HUMAN: the operator is talking to the contact, stay silent

    def _run_command(self, turn: Turn, command: Command) -> None:
        if command == Command.START:
            self._show_menu(turn)
        elif command == Command.QUESTION:
            self._enter_questions(turn)
        elif command == Command.ADVISOR:
            self._enter_documents(turn)
        elif command == Command.HANDOFF:
            self._request_human(turn)
        elif command == Command.SIMULATOR:
            self._start_simulator(turn)

    def _transition(self, turn: Turn, stage: ConversationStage, *extra: StateCommand) -> dict:
        """Move to a stage, releasing whatever the stage being left owned."""
        old_stage = current_stage(turn.lead)
        commands: List[StateCommand] = [SetStage(stage)]
        if old_stage != stage:
            if old_stage == ConversationStage.ANSWERING_QUESTIONS:
                self.buffer.cancel(turn.buffer_key)
            if old_stage == ConversationStage.WELCOME_SEQUENCE:
                delayed_queue.cancel(turn.db, contact_key=turn.contact_key, sequence=delayed_queue.SEQUENCE_WELCOME)
            if old_stage == ConversationStage.WITH_HUMAN:
                delayed_queue.cancel(
                    turn.db, contact_key=turn.contact_key, sequence=delayed_queue.SEQUENCE_HANDOFF_RELEASE
                )
                commands.append(SetHandoffFlag(False))
        commands.extend(extra)
        return update_lead_state(turn.db, turn.lead, *commands)

    def _show_menu(self, turn: Turn) -> None:
        self._transition(turn, ConversationStage.AWAITING_CHOICE)
        self._send(turn, "Para começar, escreve:\r\n\r\n" + self._menu_options())

    def _menu_options(self) -> str:
        return messages.MSG_MENU_OPTIONS.format(**self.words)

    def _enter_questions(self, turn: Turn) -> None:
        resumed = current_stage(turn.lead) == ConversationStage.WITH_HUMAN
        self._transition(turn, ConversationStage.ANSWERING_QUESTIONS)
        self._send(turn, messages.MSG_QUESTION_MODE_RESUMED if resumed else messages.MSG_QUESTION_MODE)

    def _enter_documents(self, turn: Turn) -> None:
        extra = []
        if turn.lead.doc_stage != DocStage.DOCS_RECEIVED.value:
            extra.append(SetDocStage(DocStage.AWAITING_DOCS))
        self._transition(turn, ConversationStage.DOCUMENT_COLLECTION, *extra)
        if turn.lead.doc_stage == DocStage.DOCS_RECEIVED.value:
            self._send(turn, messages.MSG_DOCS_RECEIVED.format(**self.words))
        else:
            self._send(turn, messages.MSG_UPLOAD_LINK.format(link=self._upload_link(turn.lead)))

    def _send_documents_reminder(self, turn: Turn) -> None:
        if turn.lead.doc_stage == DocStage.DOCS_RECEIVED.value:
            self._send(turn, messages.MSG_DOCS_RECEIVED.format(**self.words))
        else:
            self._send(turn, messages.MSG_UPLOAD_REMINDER.format(link=self._upload_link(turn.lead)))

    def _upload_link(self, lead: Lead) -> str:
        return messages.upload_link(self.settings.upload_base_url, lead.id)

    def _request_human(self, turn: Turn) -> None:
        if current_stage(turn.lead) == ConversationStage.WITH_HUMAN:
            self._send(turn, messages.MSG_HANDOFF_ALREADY.format(**self.words))
            return

        self._transition(turn, ConversationStage.WITH_HUMAN, SetHandoffFlag(True))
        self._send(turn, messages.MSG_HANDOFF.format(**self.words))
        self._notify_operator(turn)
        delayed_queue.schedule(
            turn.db,
            contact_key=turn.contact_key,
            instance=turn.instance,
            sequence=delayed_queue.SEQUENCE_HANDOFF_RELEASE,
            steps=[
                DelayedStep(
                    offset_seconds=self.settings.handoff_auto_release_hours * 3600,
                    kind=delayed_queue.KIND_RELEASE_HANDOFF,
                )
            ],
        )

    def _notify_operator(self, turn: Turn) -> None:
        if not self.settings.admin_whatsapp:
            return
        full_name = (turn.lead.name or "Lead").strip() or "Lead"
        first = first_name(turn.lead.name) or full_name
        link = messages.operator_deep_link(turn.contact_key, first, self.settings.human_handler_name)
        text = messages.MSG_OPERATOR_NOTICE.format(full_name=full_name, link=link, **self.words)
        if not self.sender.send_text(turn.instance, self.settings.admin_whatsapp, text):
            logger.warning("Operator not notified of handoff", extra={"context": {"lead_id": turn.lead.id}})

    # Simulator

    def _start_simulator(self, turn: Turn) -> None:
        stage = current_stage(turn.lead)
        if stage == ConversationStage.WITH_HUMAN:
            self._transition(turn, ConversationStage.AWAITING_CHOICE)
        elif stage == ConversationStage.ANSWERING_QUESTIONS:
            self.buffer.cancel(turn.buffer_key)
        reply = simulator.start()
        update_lead_state(turn.db, turn.lead, SetSimulatorStep(reply.next_step))
        self._send(turn, reply.text)

    def _advance_simulator(self, turn: Turn) -> None:
        reply = simulator.advance(turn.lead, turn.text, annual_rate=self.settings.simulator_annual_rate)
        update_lead_state(turn.db, turn.lead, SetSimulatorStep(reply.next_step))
        self._send(turn, reply.text)
        if reply.finished:
            logger.info("Simulation completed", extra={"context": {"lead_id": turn.lead.id}})

    # Questions

    def _collect_question(self, turn: Turn) -> None:
        if not has_completion_marker(turn.text):
            self.buffer.push(turn.buffer_key, turn.text)
            return

        question = self.buffer.consume(turn.buffer_key, turn.text)
        if is_greeting(question):
            self._send(turn, messages.MSG_GREETING)
            return
        if meaningful_length(question) < self.settings.question_min_length:
            self._send(turn, messages.MSG_QUESTION_TOO_SHORT)
            return

        session = turn.session
        session.question_count += 1
        if session.question_count > self.settings.max_questions_per_contact:
            self._send(
                turn,
                messages.MSG_QUESTION_LIMIT.format(limit=self.settings.max_questions_per_contact, **self.words),
            )
            return

        self.sender.send_presence(turn.instance, turn.contact_key, "composing", 1500)
        outcome = self.matcher.match(
            turn.db,
            contact_number=turn.contact_key,
            lead_id=turn.lead.id,
            question=question,
        )
        logger.info(
            "Question served",
            extra={"context": {"lead_id": turn.lead.id, "outcome": outcome.kind.value, "entry_id": outcome.entry_id}},
        )
        self._send(turn, self._reply_for(outcome, session))

    def _reply_for(self, outcome: MatchOutcome, session: ContactSession) -> str:
        if outcome.kind == MatchKind.ANSWERED:
            reply = messages.format_faq_answer(outcome.answer.question, outcome.answer.replies)
            session.ai_reply_count += 1
            every = self.settings.navigation_reminder_every
            if every > 0 and session.ai_reply_count % every == 0:
                reply += "\n\n" + messages.MSG_NAVIGATION_HINT.format(**self.words)
            return reply
        if outcome.kind == MatchKind.DUPLICATE_PENDING:
            return messages.MSG_DUPLICATE_PENDING
        if outcome.kind == MatchKind.NEW_PENDING:
            return messages.MSG_NEW_PENDING
        return messages.MSG_SERVICE_UNAVAILABLE.format(**self.words)

    async def _send_question_reminder(self, key: BufferKey) -> None:
        instance, contact_key = key
        await asyncio.to_thread(self.sender.send_text, instance, contact_key, messages.MSG_QUESTION_REMINDER)

    def _send(self, turn: Turn, text: str) -> bool:
        return self.sender.send_text(turn.instance, turn.contact_key, text)
