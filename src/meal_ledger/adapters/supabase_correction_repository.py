"""Supabase repository for correction history."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from supabase import Client

from meal_ledger.domain.corrections import CorrectionEntity, CorrectionRecord
from meal_ledger.services.corrections import CorrectionRepository


@dataclass
class SupabaseCorrectionRepository(CorrectionRepository):
    """Supabase implementation for correction history."""

    client: Client

    def create_correction(self, record: CorrectionRecord) -> None:
        """Create a correction history row."""
        self.client.table("correction_history").insert(
            {
                "id": str(record.id),
                "entity": record.entity.value,
                "entity_id": str(record.entity_id),
                "action": record.action,
                "reason": record.reason,
                "performed_by": str(record.performed_by),
                "created_at": record.created_at.isoformat(),
                "before": record.before,
                "after": record.after,
            }
        ).execute()

    def list_corrections(
        self, entity: CorrectionEntity | None, limit: int
    ) -> list[CorrectionRecord]:
        """Return recent corrections, newest first."""
        query = self.client.table("correction_history").select("*")
        if entity is not None:
            query = query.eq("entity", entity.value)
        response = query.order("created_at", desc=True).limit(limit).execute()
        return [
            CorrectionRecord(
                id=UUID(str(row["id"])),
                entity=CorrectionEntity(row["entity"]),
                entity_id=UUID(str(row["entity_id"])),
                action=str(row["action"]),
                reason=str(row.get("reason") or ""),
                performed_by=UUID(str(row["performed_by"])),
                created_at=datetime.fromisoformat(str(row["created_at"])),
                before=row.get("before"),
                after=row.get("after"),
            )
            for row in response.data or []
        ]
