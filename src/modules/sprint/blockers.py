"""Settlement blocker resolver.

A sprint may not enter settlement while disputes bound to it are still open,
and may not enter or leave settlement while integrity flags are raised
against it. Disputes still open when settlement closes do not block
completion; they are handed to the sprint-close escalation pass.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.dispute import Dispute
from src.models.sprint import Sprint
from src.modules.dispute.constants import ACTIVE_STATUSES


@dataclass
class SettlementBlockers:
    blocked: bool
    unresolved_disputes: int = 0
    integrity_flag_count: int = 0
    integrity_flags: list = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        return "; ".join(self.reasons)

    def as_dict(self) -> dict:
        return {
            "blocked": self.blocked,
            "unresolved_disputes": self.unresolved_disputes,
            "integrity_flag_count": self.integrity_flag_count,
            "integrity_flags": list(self.integrity_flags),
            "reasons": list(self.reasons),
        }


def evaluate_blockers(
    unresolved_disputes: int,
    integrity_flags: list | None,
    *,
    disputes_block: bool = True,
) -> SettlementBlockers:
    """Blocked state for a sprint.

    With ``disputes_block=False`` the unresolved count is still reported but
    only integrity flags block.
    """
    flags = list(integrity_flags or [])
    reasons = []
    if disputes_block and unresolved_disputes > 0:
        reasons.append(f"{unresolved_disputes} unresolved dispute(s)")
    if flags:
        reasons.append("unresolved integrity flags are present")
    return SettlementBlockers(
        blocked=bool(reasons),
        unresolved_disputes=unresolved_disputes,
        integrity_flag_count=len(flags),
        integrity_flags=flags,
        reasons=reasons,
    )


class SettlementBlockerResolver:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def count_unresolved_disputes(self, sprint: Sprint) -> int:
        result = await self.db.execute(
            select(func.count(Dispute.id)).where(
                Dispute.sprint_id == sprint.id,
                Dispute.status.in_(ACTIVE_STATUSES),
            )
        )
        return result.scalar() or 0

    async def resolve(self, sprint: Sprint, *, disputes_block: bool = True) -> SettlementBlockers:
        unresolved = await self.count_unresolved_disputes(sprint)
        return evaluate_blockers(
            unresolved, sprint.settlement_integrity_flags, disputes_block=disputes_block
        )
