"""Semantic FAQ lookup and duplicate detection for contact questions."""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence

from sqlalchemy.orm import Session

from leadflow.logging_config import get_logger
from leadflow.models import FaqEntry
from leadflow.services.embedding_service import EmbeddingService, parse_embedding
from leadflow.services.faq_backend import FaqAnswer, FaqBackendClient
from leadflow.services.faq_repository import FaqRepository
from leadflow.services.similarity import best_match, cosine_similarity

logger = get_logger("faq_matcher")


class MatchKind(str, Enum):
    ANSWERED = "answered"
    NEW_PENDING = "new_pending"
    DUPLICATE_PENDING = "duplicate_pending"
    SERVICE_UNAVAILABLE = "service_unavailable"


@dataclass
class MatchOutcome:
    kind: MatchKind
    question: str
    answer: Optional[FaqAnswer] = None
    entry_id: Optional[int] = None
    score: Optional[float] = None
    reason: Optional[str] = None


class FaqMatcher:
    """Decides how a contact question is served.

    In order: reuse an answered FAQ entry (score >= match threshold), report a
    pending entry it duplicates (score >= duplicate threshold), or register a
    new pending question with the FAQ backend.
    """

    def __init__(
        self,
        *,
        embeddings: EmbeddingService,
        backend: FaqBackendClient,
        repository: Optional[FaqRepository] = None,
        match_threshold: float = 0.78,
        duplicate_threshold: float = 0.82,
        defer: Optional[Callable[[Callable[[], None]], None]] = None,
        embedding_writer: Optional[Callable[[int, List[float]], None]] = None,
        score_fn: Callable[[Sequence[float], Sequence[float]], float] = cosine_similarity,
    ):
        if duplicate_threshold < match_threshold:
            raise ValueError("duplicate_threshold must be >= match_threshold")
        self.embeddings = embeddings
        self.backend = backend
        self.repository = repository or FaqRepository()
        self.match_threshold = match_threshold
        self.duplicate_threshold = duplicate_threshold
        self.defer = defer or (lambda job: job())
        self.embedding_writer = embedding_writer
        self.score_fn = score_fn

    def match(self, db: Session, *, contact_number: str, lead_id: Optional[int], question: str) -> MatchOutcome:
        question = self.embeddings.normalize_question(question)
        if not question:
            return MatchOutcome(MatchKind.SERVICE_UNAVAILABLE, question, reason="empty_question")

        try:
            answered = self.repository.list_answered(db)
            if not answered or not self.embeddings.available:
                logger.info(
                    "No answered FAQ or embeddings unavailable, escalating",
                    extra={"context": {"answered": len(answered), "embeddings": self.embeddings.available}},
                )
                return self._create_pending(contact_number, lead_id, question, None)

            query_vector = self.embeddings.embed(question)
            if not query_vector:
                return MatchOutcome(MatchKind.SERVICE_UNAVAILABLE, question, reason="embedding_failed")

            outcome = self._match_answered(db, answered, query_vector, question)
            if outcome:
                return outcome

            outcome = self._match_pending(db, query_vector, question)
            if outcome:
                return outcome

            return self._create_pending(contact_number, lead_id, question, query_vector)
        except Exception as e:
            logger.error(f"FAQ matching failed: {e}", exc_info=True, extra={"context": {"lead_id": lead_id}})
            return MatchOutcome(MatchKind.SERVICE_UNAVAILABLE, question, reason="error")

    def _vectors(self, db: Session, entries: List[FaqEntry]) -> List[tuple]:
        """(id, vector) pairs, backfilling missing embeddings on the way."""
        pairs = []
        for entry in entries:
            vector = parse_embedding(entry.embedding)
            if vector is None and (entry.text or "").strip():
                vector = self.embeddings.embed(entry.text)
                if vector:
                    self.repository.save_embedding(db, entry.id, vector)
                    logger.info("FAQ embedding backfilled", extra={"context": {"entry_id": entry.id}})
            pairs.append((entry.id, vector))
        return pairs

    def _match_answered(
        self, db: Session, entries: List[FaqEntry], query_vector: List[float], question: str
    ) -> Optional[MatchOutcome]:
        best_id, best_score = best_match(query_vector, self._vectors(db, entries), self.score_fn)
        logger.info(
            "FAQ answered match",
            extra={"context": {"best_id": best_id, "score": round(best_score, 4), "threshold": self.match_threshold}},
        )
        if best_id is None or best_score < self.match_threshold:
            return None

        answer = self.backend.get_entry(best_id)
        if not answer.ok:
            logger.warning(
                "FAQ answer content unavailable, escalating instead",
                extra={"context": {"entry_id": best_id, "error_code": answer.error_code}},
            )
            return None

        self.backend.increment_usage(best_id)
        return MatchOutcome(MatchKind.ANSWERED, question, answer=answer.value, entry_id=best_id, score=best_score)

    def _match_pending(self, db: Session, query_vector: List[float], question: str) -> Optional[MatchOutcome]:
        pending = self.repository.list_pending(db)
        if not pending:
            return None
        best_id, best_score = best_match(query_vector, self._vectors(db, pending), self.score_fn)
        logger.info(
            "FAQ pending match",
            extra={"context": {"best_id": best_id, "score": round(best_score, 4), "threshold": self.duplicate_threshold}},
        )
        if best_id is None or best_score < self.duplicate_threshold:
            return None
        return MatchOutcome(MatchKind.DUPLICATE_PENDING, question, entry_id=best_id, score=best_score)

    def _create_pending(
        self,
        contact_number: str,
        lead_id: Optional[int],
        question: str,
        query_vector: Optional[List[float]],
    ) -> MatchOutcome:
        created = self.backend.create_pending(contact_number, lead_id, question)
        if not created.ok:
            return MatchOutcome(MatchKind.SERVICE_UNAVAILABLE, question, reason=created.error_code)

        entry = created.value
        if entry.entry_id is not None and self.embedding_writer and self.embeddings.available:
            vector = query_vector if entry.text == question else None
            self.defer(lambda: self._persist_embedding(entry.entry_id, entry.text, vector))
        return MatchOutcome(MatchKind.NEW_PENDING, question, entry_id=entry.entry_id)

    def _persist_embedding(self, entry_id: int, text: str, vector: Optional[List[float]]) -> None:
        try:
            vector = vector or self.embeddings.embed(text)
            if vector:
                self.embedding_writer(entry_id, vector)
        except Exception as e:
            logger.error(f"Pending question embedding not saved: {e}", extra={"context": {"entry_id": entry_id}})
