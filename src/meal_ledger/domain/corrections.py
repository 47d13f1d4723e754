"""Correction history models."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from uuid import UUID


class CorrectionEntity(StrEnum):
    """Entities that privileged corrections touch."""

    MEAL = "meal"
    MONTH_SETTINGS = "month_settings"
    BREAKFAST = "breakfast"
    TRANSACTION = "transaction"


@dataclass(frozen=True)
class CorrectionRecord:
    """Audit row written for every privileged override."""

    id: UUID
    entity: CorrectionEntity
    entity_id: UUID
    action: str
    reason: str
    performed_by: UUID
    created_at: datetime
    before: dict[str, object] | None = None
    after: dict[str, object] | None = None
