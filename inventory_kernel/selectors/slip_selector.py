"""
Module: inventory_kernel.selectors.slip_selector
Responsibility: Read-only access to consumption slips and their lines.
Architecture position: Kernel > Selectors.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from inventory_kernel.domain.dtos import SlipLineSnapshot, SlipSnapshot
from inventory_kernel.models.slip import ConsumptionSlip
from inventory_kernel.selectors.base import BaseSelector

SLIP_LIST_LIMIT = 200


class SlipSelector(BaseSelector[ConsumptionSlip]):
    """Queries over ConsumptionSlip."""

    def list_slips(self, limit: int = SLIP_LIST_LIMIT) -> list[SlipSnapshot]:
        """Most recent slips first, lines included."""
        stmt = (
            select(ConsumptionSlip)
            .options(selectinload(ConsumptionSlip.lines))
            .order_by(ConsumptionSlip.created_at.desc(), ConsumptionSlip.slip_no.desc())
            .limit(limit)
        )
        return [self._to_dto(slip) for slip in self.session.execute(stmt).scalars()]

    def get_slip(self, slip_id: UUID | str) -> SlipSnapshot | None:
        if not isinstance(slip_id, UUID):
            try:
                slip_id = UUID(str(slip_id))
            except ValueError:
                return None
        slip = self.session.execute(
            select(ConsumptionSlip)
            .options(selectinload(ConsumptionSlip.lines))
            .where(ConsumptionSlip.id == slip_id)
        ).scalar_one_or_none()
        return self._to_dto(slip) if slip is not None else None

    def get_by_slip_no(self, slip_no: str) -> SlipSnapshot | None:
        slip = self.session.execute(
            select(ConsumptionSlip)
            .options(selectinload(ConsumptionSlip.lines))
            .where(ConsumptionSlip.slip_no == slip_no)
        ).scalar_one_or_none()
        return self._to_dto(slip) if slip is not None else None

    @staticmethod
    def _to_dto(slip: ConsumptionSlip) -> SlipSnapshot:
        return SlipSnapshot(
            id=slip.id,
            slip_no=slip.slip_no,
            task_id=slip.task_id,
            created_by=slip.created_by,
            created_at=slip.created_at,
            lines=tuple(
                SlipLineSnapshot(
                    item_code=line.item_code_snapshot,
                    description=line.item_description_snapshot,
                    qty_used=line.qty_used,
                )
                for line in slip.lines
            ),
        )
