from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from leadflow.models import FaqEntry
from leadflow.services.embedding_service import serialize_embedding


class FaqRepository:
    """Read/write contract over the FAQ entry table."""

    def list_answered(self, db: Session) -> List[FaqEntry]:
        return self._list(db, pending=False)

    def list_pending(self, db: Session) -> List[FaqEntry]:
        return self._list(db, pending=True)

    def get(self, db: Session, entry_id: int) -> Optional[FaqEntry]:
        return db.query(FaqEntry).filter(FaqEntry.id == entry_id).first()

    def save_embedding(self, db: Session, entry_id: int, vector: List[float]) -> bool:
        entry = self.get(db, entry_id)
        if not entry:
            return False
        entry.embedding = serialize_embedding(vector)
        entry.updated_at = datetime.now(timezone.utc)
        db.flush()
        return True

    def _list(self, db: Session, *, pending: bool) -> List[FaqEntry]:
        return (
            db.query(FaqEntry)
            .filter(FaqEntry.is_pending == pending, FaqEntry.is_spam.is_(False))
            .order_by(FaqEntry.id.asc())
            .all()
        )
