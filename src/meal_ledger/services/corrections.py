"""Correction history service."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol
from uuid import UUID, uuid4

from meal_ledger.domain.corrections import CorrectionEntity, CorrectionRecord
from meal_ledger.domain.errors import ValidationError


class CorrectionRepository(Protocol):
    """Persistence interface for correction history."""

    def create_correction(self, record: CorrectionRecord) -> None:
        """Create a correction history row."""

    def list_corrections(
        self, entity: CorrectionEntity | None, limit: int
    ) -> list[CorrectionRecord]:
        """Return recent corrections, newest first."""


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class CorrectionService:
    """Service for recording privileged corrections."""

    repository: CorrectionRepository
    clock: Callable[[], datetime] = _utc_now

    def record(  # noqa: PLR0913
        self,
        entity: CorrectionEntity,
        entity_id: UUID,
        action: str,
        reason: str,
        performed_by: UUID,
        before: dict[str, object] | None,
        after: dict[str, object] | None,
    ) -> CorrectionRecord:
        """Persist a correction history row."""
        if not reason.strip():
            raise ValidationError("A reason is required for corrections")
        record = CorrectionRecord(
            id=uuid4(),
            entity=entity,
            entity_id=entity_id,
            action=action,
            reason=reason,
            performed_by=performed_by,
            created_at=self.clock(),
            before=before,
            after=after,
        )
        self.repository.create_correction(record)
        return record

    def list_recent(
        self, entity: CorrectionEntity | None = None, limit: int = 50
    ) -> list[CorrectionRecord]:
        """Return recent corrections."""
        return self.repository.list_corrections(entity, limit)
