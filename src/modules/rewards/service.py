"""RewardSettlementService — single-shot, idempotent sprint reward settlement."""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import func, select, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.database.errors import UNDEFINED_FUNCTION, sqlstate
from src.exceptions import DependencyException
from src.models.enums import DistributionType, RewardSettlementStatus, SprintStatus, TaskStatus
from src.models.reward_distribution import RewardDistribution
from src.models.reward_settlement_commit import RewardSettlementCommit
from src.models.sprint import Sprint
from src.models.task import Task
from src.modules.events.outbox_service import OutboxService
from src.modules.members.service import ProfileService
from src.modules.rewards.settlement import (
    allocate_pool,
    classify_settlement_integrity,
    compute_carryover_in,
    compute_carryover_out,
    compute_emission_cap,
    normalize_reward_settlement_policy,
    parse_numeric,
    quantize,
)
from src.modules.sprint.constants import REWARD_SETTLEMENT_KEY_TEMPLATE

logger = logging.getLogger(__name__)

CODE_KILL_SWITCH = "SETTLEMENT_KILL_SWITCH"
CODE_REWARDS_DISABLED = "REWARDS_DISABLED"

EVENT_REWARD_SETTLEMENT_COMMITTED = "reward.settlement_committed"
EVENT_REWARD_SETTLEMENT_HELD = "reward.settlement_held"

def settlement_key(sprint_id: uuid.UUID) -> str:
    return REWARD_SETTLEMENT_KEY_TEMPLATE.format(sprint_id=sprint_id)


@dataclass
class RewardSettlementResult:
    ok: bool
    status: str
    idempotency_key: str
    code: str | None = None
    message: str | None = None
    replayed: bool = False
    pool: str = "0"
    emission_cap: str = "0"
    carryover_in: str = "0"
    carryover_out: str = "0"
    carryover_sprint_count: int = 0
    distributed_count: int = 0
    distributed_total: str = "0"
    committed_at: str | None = None

    def as_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict, *, replayed: bool = False) -> RewardSettlementResult:
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        known["replayed"] = replayed
        return cls(**known)


class RewardSettlementService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.profiles = ProfileService(db)
        self.outbox = OutboxService(db)

    async def commit_sprint_settlement(
        self,
        sprint: Sprint,
        actor_id: uuid.UUID | None,
        idempotency_key: str | None = None,
        now: datetime | None = None,
    ) -> RewardSettlementResult:
        """Commit the sprint's reward pool exactly once.

        ``sprint`` must already be locked by the caller. A key that was
        committed before is replayed unchanged; held and killed outcomes are
        not recorded against the key so they can be retried once the cause is
        cleared.
        """
        now = now or datetime.now(UTC)
        key = idempotency_key or settlement_key(sprint.id)

        previous = await self._find_commit(key)
        if previous is not None:
            logger.info("Replaying reward settlement %s for sprint %s", key, sprint.id)
            return RewardSettlementResult.from_dict(previous.result, replayed=True)

        if settings.reward_settlement_rpc_enabled:
            rpc_result = await self._commit_via_rpc(sprint, actor_id, key)
            if rpc_result is not None:
                return rpc_result

        return await self._commit_in_process(sprint, actor_id, key, now)

    # ------------------------------------------------------------------
    # Fast path
    # ------------------------------------------------------------------

    async def _commit_via_rpc(
        self, sprint: Sprint, actor_id: uuid.UUID | None, key: str
    ) -> RewardSettlementResult | None:
        """Call the database-side commit; None means fall back to the in-process path."""
        try:
            async with self.db.begin_nested():
                result = await self.db.execute(
                    text(
                        "SELECT commit_sprint_reward_settlement("
                        "p_sprint_id => :sprint_id, p_actor_id => :actor_id, p_reason => :reason)"
                    ),
                    {
                        "sprint_id": sprint.id,
                        "actor_id": actor_id,
                        "reason": "sprint_completion",
                    },
                )
                payload = result.scalar_one()
        except DBAPIError as exc:
            if sqlstate(exc) == UNDEFINED_FUNCTION:
                logger.warning(
                    "commit_sprint_reward_settlement is not installed; "
                    "falling back to in-process settlement for sprint %s",
                    sprint.id,
                )
                return None
            raise DependencyException(
                "Reward settlement commit failed",
                details=[{"sprint_id": str(sprint.id)}],
            ) from exc

        await self.db.refresh(sprint)
        data = dict(payload or {})
        data.setdefault("idempotency_key", key)
        data.setdefault("status", sprint.reward_settlement_status.value)
        data.setdefault("ok", sprint.reward_settlement_status == RewardSettlementStatus.COMMITTED)
        return RewardSettlementResult.from_dict(data)

    # ------------------------------------------------------------------
    # In-process commit
    # ------------------------------------------------------------------

    async def _find_commit(self, key: str) -> RewardSettlementCommit | None:
        result = await self.db.execute(
            select(RewardSettlementCommit).where(RewardSettlementCommit.idempotency_key == key)
        )
        return result.scalar_one_or_none()

    async def _existing_distribution_count(self, sprint_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count(RewardDistribution.id)).where(
                RewardDistribution.sprint_id == sprint_id,
                RewardDistribution.distribution_type == DistributionType.EPOCH,
            )
        )
        return result.scalar() or 0

    async def _previous_settled_sprint(self, sprint: Sprint) -> Sprint | None:
        result = await self.db.execute(
            select(Sprint)
            .where(Sprint.id != sprint.id, Sprint.status == SprintStatus.COMPLETED)
            .order_by(Sprint.completed_at.desc().nulls_last())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _points_by_assignee(self, sprint_id: uuid.UUID) -> dict[uuid.UUID, int]:
        result = await self.db.execute(
            select(Task.assignee_id, func.coalesce(func.sum(Task.points), 0))
            .where(
                Task.sprint_id == sprint_id,
                Task.status == TaskStatus.DONE,
                Task.assignee_id.is_not(None),
            )
            .group_by(Task.assignee_id)
        )
        return {user_id: int(points) for user_id, points in result.all()}

    async def _commit_in_process(
        self,
        sprint: Sprint,
        actor_id: uuid.UUID | None,
        key: str,
        now: datetime,
    ) -> RewardSettlementResult:
        already_committed = (
            sprint.reward_settlement_status == RewardSettlementStatus.COMMITTED
            and sprint.reward_settlement_idempotency_key not in (None, key)
        )
        if already_committed or await self._existing_distribution_count(sprint.id) > 0:
            return await self._kill(sprint, key, now)

        org = await self.profiles.get_org()
        config = dict(org.rewards_config or {}) if org else {}
        enabled = config.get("enabled") is True
        policy = normalize_reward_settlement_policy(config)

        previous = await self._previous_settled_sprint(sprint)
        carryover_in = compute_carryover_in(
            previous.reward_carryover_amount if previous else None,
            previous.reward_carryover_sprint_count if previous else None,
            policy.carryover_sprint_cap,
        )
        treasury = parse_numeric(config.get("treasury_balance_for_emission"))
        emission_cap = quantize(compute_emission_cap(treasury, policy) + carryover_in)

        if sprint.reward_pool is not None:
            pool = Decimal(sprint.reward_pool)
        else:
            pool = parse_numeric(config.get("default_epoch_pool")) or Decimal(0)
        pool = quantize(pool)

        result = RewardSettlementResult(
            ok=True,
            status=RewardSettlementStatus.COMMITTED.value,
            idempotency_key=key,
            pool=str(pool),
            emission_cap=str(emission_cap),
            carryover_in=str(carryover_in),
        )

        if not enabled:
            result.code = CODE_REWARDS_DISABLED
            result.message = "rewards are disabled; nothing distributed"
            return await self._record_commit(sprint, actor_id, result, Decimal(0), 0, now)

        integrity = classify_settlement_integrity(pool, emission_cap)
        if integrity.blocked:
            return await self._hold(sprint, result, integrity.code, integrity.reason, now)

        allocations = allocate_pool(pool, await self._points_by_assignee(sprint.id))
        for allocation in allocations:
            self.db.add(
                RewardDistribution(
                    sprint_id=sprint.id,
                    user_id=allocation.user_id,
                    distribution_type=DistributionType.EPOCH,
                    points=allocation.points,
                    share=allocation.share,
                    amount=allocation.amount,
                )
            )
        distributed = quantize(sum((a.amount for a in allocations), Decimal(0)))
        carryover_out, streak = compute_carryover_out(
            emission_cap,
            distributed,
            previous.reward_carryover_sprint_count if previous else None,
            policy.carryover_sprint_cap,
        )

        result.distributed_count = len(allocations)
        result.distributed_total = str(distributed)
        result.carryover_out = str(carryover_out)
        result.carryover_sprint_count = streak
        return await self._record_commit(sprint, actor_id, result, carryover_out, streak, now)

    async def _record_commit(
        self,
        sprint: Sprint,
        actor_id: uuid.UUID | None,
        result: RewardSettlementResult,
        carryover_out: Decimal,
        streak: int,
        now: datetime,
    ) -> RewardSettlementResult:
        result.committed_at = now.isoformat()

        sprint.reward_pool = Decimal(result.pool)
        sprint.reward_emission_cap = Decimal(result.emission_cap)
        sprint.reward_carryover_amount = carryover_out
        sprint.reward_carryover_sprint_count = streak
        sprint.reward_settlement_status = RewardSettlementStatus.COMMITTED
        sprint.reward_settlement_idempotency_key = result.idempotency_key
        sprint.reward_settlement_committed_at = now

        self.db.add(
            RewardSettlementCommit(
                idempotency_key=result.idempotency_key,
                sprint_id=sprint.id,
                committed_by=actor_id,
                result=result.as_dict(),
            )
        )
        await self.outbox.publish_event(
            EVENT_REWARD_SETTLEMENT_COMMITTED, "sprint", sprint.id, result.as_dict()
        )
        await self.db.flush()

        logger.info(
            "Reward settlement committed for sprint %s: %d distributions totalling %s (cap %s)",
            sprint.id, result.distributed_count, result.distributed_total, result.emission_cap,
        )
        return result

    async def _hold(
        self,
        sprint: Sprint,
        result: RewardSettlementResult,
        code: str | None,
        reason: str | None,
        now: datetime,
    ) -> RewardSettlementResult:
        result.ok = False
        result.status = RewardSettlementStatus.HELD.value
        result.code = code
        result.message = reason

        sprint.reward_settlement_status = RewardSettlementStatus.HELD
        sprint.reward_emission_cap = Decimal(result.emission_cap)
        sprint.settlement_blocked_reason = reason

        await self.outbox.publish_event(
            EVENT_REWARD_SETTLEMENT_HELD, "sprint", sprint.id, result.as_dict()
        )
        await self.db.flush()
        logger.warning(
            "Reward settlement held for sprint %s: %s (pool %s, cap %s)",
            sprint.id, code, result.pool, result.emission_cap,
        )
        return result

    async def _kill(self, sprint: Sprint, key: str, now: datetime) -> RewardSettlementResult:
        message = "epoch distributions already exist for this sprint without a matching commit"
        sprint.reward_settlement_status = RewardSettlementStatus.KILLED
        sprint.reward_settlement_kill_switch_at = now
        sprint.settlement_blocked_reason = message

        result = RewardSettlementResult(
            ok=False,
            status=RewardSettlementStatus.KILLED.value,
            idempotency_key=key,
            code=CODE_KILL_SWITCH,
            message=message,
        )
        await self.outbox.publish_event(
            EVENT_REWARD_SETTLEMENT_HELD, "sprint", sprint.id, result.as_dict()
        )
        await self.db.flush()
        logger.error("Reward settlement kill switch tripped for sprint %s", sprint.id)
        return result
