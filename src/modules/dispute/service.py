"""Dispute lifecycle service — filing, response, arbitration, appeal, mediation."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from src.models.dispute import Dispute
from src.models.dispute_comment import DisputeComment
from src.models.dispute_transition import DisputeTransition
from src.models.enums import (
    CommentVisibility,
    DisputeResolution,
    DisputeStatus,
    DisputeTier,
    SubmissionReviewStatus,
    UserRole,
)
from src.models.sprint import Sprint
from src.models.task import Task
from src.models.task_submission import TaskSubmission
from src.modules.dispute.constants import (
    ACTIVE_STATUSES,
    APPEALABLE_STATUSES,
    ASSIGNABLE_STATUSES,
    EVENT_DISPUTE_APPEALED,
    EVENT_DISPUTE_ASSIGNED,
    EVENT_DISPUTE_COMMENTED,
    EVENT_DISPUTE_FILED,
    EVENT_DISPUTE_MEDIATED,
    EVENT_DISPUTE_MEDIATION_PROPOSED,
    EVENT_DISPUTE_RESOLVED,
    EVENT_DISPUTE_RESPONDED,
    EVENT_DISPUTE_UNASSIGNED,
    EVENT_DISPUTE_WITHDRAWN,
    FORFEITING_RESOLUTIONS,
    INELIGIBLE_ACTIVE_DISPUTE,
    RESOLVABLE_STATUSES,
    RESPONDABLE_STATUSES,
    WITHDRAWABLE_STATUSES,
)
from src.modules.dispute.policy import (
    DisputeConfig,
    EligibilityResult,
    can_arbitrate,
    can_file_dispute,
    compromise_points,
    is_deadline_past,
    is_terminal,
    normalize_evidence_files,
    normalize_links,
    withdrawal_refund,
)
from src.modules.dispute.schemas import DisputeCreate
from src.modules.events.outbox_service import OutboxService
from src.modules.members.auth import AuthenticatedUser
from src.modules.members.service import ProfileService
from src.modules.sprint.constants import EXECUTION_STATUSES

logger = logging.getLogger(__name__)


@dataclass
class MediationOutcome:
    dispute: Dispute
    confirmed: bool


class DisputeService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.profiles = ProfileService(db)
        self.outbox = OutboxService(db)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def get_config(self) -> DisputeConfig:
        org = await self.profiles.get_org()
        return DisputeConfig.from_overrides(org.gamification_config if org else None)

    async def _get_dispute(self, dispute_id: uuid.UUID, *, for_update: bool = False) -> Dispute:
        stmt = select(Dispute).where(Dispute.id == dispute_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        dispute = result.scalar_one_or_none()
        if dispute is None:
            raise NotFoundException(f"Dispute {dispute_id} not found")
        return dispute

    async def _get_submission(
        self, submission_id: uuid.UUID, *, for_update: bool = False
    ) -> TaskSubmission:
        stmt = select(TaskSubmission).where(TaskSubmission.id == submission_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        submission = result.scalar_one_or_none()
        if submission is None:
            raise NotFoundException("Submission not found")
        return submission

    async def _get_task(self, task_id: uuid.UUID) -> Task:
        result = await self.db.execute(select(Task).where(Task.id == task_id))
        task = result.scalar_one_or_none()
        if task is None:
            raise NotFoundException(f"Task {task_id} not found")
        return task

    async def _has_active_dispute(self, submission_id: uuid.UUID) -> bool:
        result = await self.db.execute(
            select(func.count())
            .select_from(Dispute)
            .where(
                Dispute.submission_id == submission_id,
                Dispute.status.in_(ACTIVE_STATUSES),
            )
        )
        return (result.scalar() or 0) > 0

    async def _most_recent_dispute(self, disputant_id: uuid.UUID) -> Dispute | None:
        result = await self.db.execute(
            select(Dispute)
            .where(Dispute.disputant_id == disputant_id)
            .order_by(Dispute.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _sprint_binding(self, task: Task) -> uuid.UUID | None:
        """Bind to the task's sprint, else to whichever sprint is currently running."""
        if task.sprint_id is not None:
            return task.sprint_id
        result = await self.db.execute(
            select(Sprint.id)
            .where(Sprint.status.in_(EXECUTION_STATUSES))
            .order_by(Sprint.start_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Audit + events
    # ------------------------------------------------------------------

    def _move(
        self,
        dispute: Dispute,
        to_status: DisputeStatus,
        actor_id: uuid.UUID | None,
        reason: str,
        *,
        to_tier: DisputeTier | None = None,
    ) -> None:
        """Apply a status/tier change and append the audit row."""
        transition = DisputeTransition(
            dispute_id=dispute.id,
            from_status=dispute.status,
            to_status=to_status,
            from_tier=dispute.tier,
            to_tier=to_tier or dispute.tier,
            transitioned_by=actor_id,
            reason=reason,
        )
        dispute.status = to_status
        if to_tier is not None:
            dispute.tier = to_tier
        self.db.add(transition)

    async def _publish(self, event_type: str, dispute: Dispute, **extra) -> None:
        payload = {
            "dispute_id": str(dispute.id),
            "status": dispute.status.value,
            "tier": dispute.tier.value,
            "sprint_id": str(dispute.sprint_id) if dispute.sprint_id else None,
        }
        payload.update(extra)
        await self.outbox.publish_event(event_type, "dispute", dispute.id, payload)

    @staticmethod
    def _ensure_active(dispute: Dispute) -> None:
        if is_terminal(dispute.status):
            raise ConflictException(
                f"Dispute is already {dispute.status.value} and cannot be changed"
            )

    # ------------------------------------------------------------------
    # XP ledger helpers
    # ------------------------------------------------------------------

    async def _refund_stake(self, dispute: Dispute, amount: int, reason: str) -> None:
        amount = min(amount, dispute.xp_stake - dispute.xp_refunded)
        if amount <= 0:
            return
        await self.profiles.adjust_xp(dispute.disputant_id, amount, reason)
        dispute.xp_refunded += amount

    async def _forfeit_stake(self, dispute: Dispute) -> None:
        """Claw back any refund granted by an earlier ruling that an appeal reversed."""
        if dispute.xp_refunded > 0:
            await self.profiles.adjust_xp(
                dispute.disputant_id, -dispute.xp_refunded, "dispute ruling reversed on appeal"
            )
            dispute.xp_refunded = 0

    async def _apply_ruling_to_submission(
        self,
        dispute: Dispute,
        resolution: DisputeResolution,
        new_quality_score: int | None,
        now: datetime,
    ) -> int:
        """Rewrite the submission review per the ruling; returns the points delta."""
        submission = await self._get_submission(dispute.submission_id, for_update=True)
        previous_points = submission.earned_points or 0

        if resolution in FORFEITING_RESOLUTIONS:
            snapshot = dispute.review_snapshot or {}
            submission.review_status = SubmissionReviewStatus(
                snapshot.get("review_status", SubmissionReviewStatus.REJECTED.value)
            )
            submission.quality_score = snapshot.get("quality_score")
            submission.earned_points = snapshot.get("earned_points")
        else:
            task = await self._get_task(dispute.task_id)
            if resolution == DisputeResolution.OVERTURNED:
                quality, earned = 5, task.points
            else:
                quality = new_quality_score
                earned = compromise_points(task.points, new_quality_score)
            submission.review_status = SubmissionReviewStatus.APPROVED
            submission.quality_score = quality
            submission.earned_points = earned
            submission.reviewed_at = now

        delta = (submission.earned_points or 0) - previous_points
        if delta:
            await self.profiles.adjust_points(dispute.disputant_id, delta)
        return delta

    # ------------------------------------------------------------------
    # Eligibility + filing
    # ------------------------------------------------------------------

    async def _eligibility(
        self, user_id: uuid.UUID, submission_id: uuid.UUID, config: DisputeConfig
    ) -> tuple[EligibilityResult, int]:
        profile = await self.profiles.get_profile(user_id)
        result = can_file_dispute(
            profile,
            config,
            active_dispute_exists=await self._has_active_dispute(submission_id),
            recent_dispute=await self._most_recent_dispute(user_id),
            now=datetime.now(UTC),
        )
        return result, profile.xp_total

    async def check_eligibility(self, user: AuthenticatedUser, submission_id: uuid.UUID) -> dict:
        config = await self.get_config()
        result, xp = await self._eligibility(user.id, submission_id, config)
        return {
            "eligible": result.eligible,
            "reason": result.reason,
            "code": result.code,
            "cooldown_remaining_days": result.cooldown_remaining_days,
            "xp_stake": config.xp_dispute_stake,
            "user_xp": xp,
        }

    async def file_dispute(self, data: DisputeCreate, user: AuthenticatedUser) -> Dispute:
        config = await self.get_config()
        # Lock the filer so concurrent filings see the same XP balance
        await self.profiles.get_profile(user.id, for_update=True)
        submission = await self._get_submission(data.submission_id, for_update=True)

        if submission.user_id != user.id:
            raise ForbiddenException("You can only dispute your own submissions")
        if submission.reviewer_id is None or submission.review_status == SubmissionReviewStatus.PENDING:
            raise ValidationException("Submission has not been reviewed yet")
        if submission.reviewer_id == user.id:
            raise ValidationException("You cannot dispute your own review")

        eligibility, _ = await self._eligibility(user.id, submission.id, config)
        if not eligibility.eligible:
            if eligibility.code == INELIGIBLE_ACTIVE_DISPUTE:
                raise ConflictException(eligibility.reason)
            raise ForbiddenException(
                eligibility.reason,
                details=[{
                    "code": eligibility.code,
                    "cooldown_remaining_days": eligibility.cooldown_remaining_days,
                }],
            )

        evidence_files = normalize_evidence_files(data.evidence_files, user.id)
        evidence_links = normalize_links([str(link) for link in data.evidence_links])
        task = await self._get_task(submission.task_id)
        now = datetime.now(UTC)

        dispute = Dispute(
            id=uuid.uuid4(),
            submission_id=submission.id,
            task_id=task.id,
            sprint_id=await self._sprint_binding(task),
            disputant_id=user.id,
            reviewer_id=submission.reviewer_id,
            status=DisputeStatus.MEDIATION if data.request_mediation else DisputeStatus.OPEN,
            tier=DisputeTier.MEDIATION if data.request_mediation else DisputeTier.COUNCIL,
            reason=data.reason,
            evidence_text=data.evidence_text,
            evidence_links=evidence_links,
            evidence_files=evidence_files,
            response_links=[],
            response_deadline=now + timedelta(hours=config.dispute_response_hours),
            mediation_deadline=(
                now + timedelta(hours=config.dispute_mediation_hours)
                if data.request_mediation
                else None
            ),
            xp_stake=config.xp_dispute_stake,
            xp_refunded=0,
            review_snapshot={
                "review_status": submission.review_status.value,
                "quality_score": submission.quality_score,
                "earned_points": submission.earned_points,
            },
        )
        try:
            async with self.db.begin_nested():
                self.db.add(dispute)
                await self.db.flush()
        except IntegrityError as exc:
            if "ux_disputes_active_submission" in str(exc):
                raise ConflictException(
                    "An active dispute already exists for this submission"
                ) from exc
            raise

        await self.profiles.adjust_xp(user.id, -config.xp_dispute_stake, "dispute stake")
        submission.review_status = SubmissionReviewStatus.DISPUTED

        self.db.add(
            DisputeTransition(
                dispute_id=dispute.id,
                from_status=dispute.status,
                to_status=dispute.status,
                from_tier=None,
                to_tier=dispute.tier,
                transitioned_by=user.id,
                reason="Dispute filed",
            )
        )
        await self._publish(
            EVENT_DISPUTE_FILED,
            dispute,
            disputant_id=str(user.id),
            reviewer_id=str(dispute.reviewer_id),
            submission_id=str(submission.id),
        )
        logger.info(
            "Dispute %s filed by %s on submission %s (tier=%s)",
            dispute.id, user.id, submission.id, dispute.tier.value,
        )
        return dispute

    # ------------------------------------------------------------------
    # Lifecycle actions
    # ------------------------------------------------------------------

    async def respond(
        self,
        dispute_id: uuid.UUID,
        response_text: str,
        response_links: list[str],
        user: AuthenticatedUser,
    ) -> Dispute:
        dispute = await self._get_dispute(dispute_id, for_update=True)
        if dispute.reviewer_id != user.id:
            raise ForbiddenException("Only the original reviewer can respond")
        self._ensure_active(dispute)
        if dispute.response_submitted_at is not None:
            raise ConflictException("Response already submitted")
        if dispute.status not in RESPONDABLE_STATUSES:
            raise ConflictException("Dispute is not in a state that accepts responses")

        dispute.response_text = response_text
        dispute.response_links = normalize_links(response_links)
        dispute.response_submitted_at = datetime.now(UTC)
        if dispute.tier != DisputeTier.MEDIATION:
            self._move(dispute, DisputeStatus.UNDER_REVIEW, user.id, "Reviewer responded")
        await self.db.flush()

        await self._publish(EVENT_DISPUTE_RESPONDED, dispute, reviewer_id=str(user.id))
        logger.info("Reviewer %s responded to dispute %s", user.id, dispute.id)
        return dispute

    async def assign(self, dispute_id: uuid.UUID, user: AuthenticatedUser) -> Dispute:
        """Self-assign the caller as arbitrator."""
        dispute = await self._get_dispute(dispute_id, for_update=True)
        self._ensure_active(dispute)
        if user.id in (dispute.reviewer_id, dispute.disputant_id):
            raise ForbiddenException("Dispute parties cannot arbitrate this dispute")

        # Assignment lifts a mediation-tier dispute to council review
        target_tier = DisputeTier.COUNCIL if dispute.tier == DisputeTier.MEDIATION else dispute.tier
        if not can_arbitrate(user.role, target_tier):
            raise ForbiddenException(
                f"{target_tier.value.title()}-tier disputes cannot be arbitrated by role "
                f"'{user.role.value}'"
            )
        if dispute.status not in ASSIGNABLE_STATUSES:
            raise ConflictException("Dispute is not in an assignable state")
        if dispute.arbitrator_id is not None and dispute.arbitrator_id != user.id:
            raise ConflictException("Dispute already has an arbitrator")

        if dispute.status in (DisputeStatus.OPEN, DisputeStatus.AWAITING_RESPONSE):
            to_status = DisputeStatus.UNDER_REVIEW
        elif dispute.status == DisputeStatus.APPEALED:
            to_status = DisputeStatus.APPEAL_REVIEW
        else:
            to_status = dispute.status

        dispute.arbitrator_id = user.id
        if to_status != dispute.status or target_tier != dispute.tier:
            self._move(dispute, to_status, user.id, "Arbitrator assigned", to_tier=target_tier)
        await self.db.flush()

        await self._publish(EVENT_DISPUTE_ASSIGNED, dispute, arbitrator_id=str(user.id))
        logger.info("Dispute %s assigned to arbitrator %s", dispute.id, user.id)
        return dispute

    async def recuse(self, dispute_id: uuid.UUID, user: AuthenticatedUser) -> Dispute:
        dispute = await self._get_dispute(dispute_id, for_update=True)
        if dispute.arbitrator_id != user.id:
            raise ForbiddenException("You are not the assigned arbitrator")
        self._ensure_active(dispute)

        dispute.arbitrator_id = None
        if dispute.status == DisputeStatus.APPEAL_REVIEW:
            self._move(dispute, DisputeStatus.APPEALED, user.id, "Arbitrator recused")
        elif dispute.status == DisputeStatus.UNDER_REVIEW and dispute.response_submitted_at is None:
            self._move(dispute, DisputeStatus.OPEN, user.id, "Arbitrator recused")
        await self.db.flush()

        await self._publish(EVENT_DISPUTE_UNASSIGNED, dispute, arbitrator_id=str(user.id))
        logger.info("Arbitrator %s recused from dispute %s", user.id, dispute.id)
        return dispute

    async def resolve(
        self,
        dispute_id: uuid.UUID,
        resolution: DisputeResolution,
        resolution_notes: str,
        new_quality_score: int | None,
        user: AuthenticatedUser,
    ) -> Dispute:
        if not resolution_notes or not resolution_notes.strip():
            raise ValidationException("resolution_notes are required")
        if (resolution == DisputeResolution.COMPROMISE) != (new_quality_score is not None):
            raise ValidationException(
                "new_quality_score is required for, and only for, a compromise"
            )

        dispute = await self._get_dispute(dispute_id, for_update=True)
        if not can_arbitrate(user.role, dispute.tier):
            raise ForbiddenException(
                f"Only {dispute.tier.value}-tier arbitrators can resolve this dispute"
            )
        if dispute.arbitrator_id != user.id:
            raise ForbiddenException("You are not the assigned arbitrator for this dispute")
        self._ensure_active(dispute)
        if dispute.status not in RESOLVABLE_STATUSES:
            raise ConflictException("Dispute is not in a resolvable state")

        now = datetime.now(UTC)
        if dispute.response_submitted_at is None and not is_deadline_past(
            dispute.response_deadline, now
        ):
            raise ConflictException(
                "The reviewer response window is still open",
                details=[{"response_deadline": dispute.response_deadline.isoformat()}],
            )

        config = await self.get_config()
        to_status = (
            DisputeStatus.DISMISSED
            if resolution == DisputeResolution.DISMISSED
            else DisputeStatus.RESOLVED
        )
        dispute.resolution = resolution
        dispute.resolution_notes = resolution_notes
        dispute.new_quality_score = new_quality_score
        dispute.resolved_at = now
        dispute.appeal_deadline = (
            now + timedelta(hours=config.dispute_appeal_hours)
            if dispute.tier == DisputeTier.COUNCIL
            else None
        )
        self._move(dispute, to_status, user.id, f"Resolved: {resolution.value}")

        points_delta = await self._apply_ruling_to_submission(
            dispute, resolution, new_quality_score, now
        )
        if resolution in FORFEITING_RESOLUTIONS:
            await self._forfeit_stake(dispute)
        else:
            await self._refund_stake(dispute, dispute.xp_stake, "dispute stake refund")
        if resolution == DisputeResolution.OVERTURNED:
            await self.profiles.adjust_xp(
                dispute.reviewer_id, -config.xp_dispute_reviewer_penalty, "review overturned"
            )
        await self.profiles.adjust_xp(
            user.id, config.xp_dispute_arbitrator_reward, "dispute arbitrated"
        )
        await self.db.flush()

        await self._publish(
            EVENT_DISPUTE_RESOLVED,
            dispute,
            resolution=resolution.value,
            arbitrator_id=str(user.id),
            points_delta=points_delta,
        )
        logger.info("Dispute %s resolved as %s by %s", dispute.id, resolution.value, user.id)
        return dispute

    async def appeal(
        self, dispute_id: uuid.UUID, appeal_reason: str, user: AuthenticatedUser
    ) -> Dispute:
        dispute = await self._get_dispute(dispute_id, for_update=True)
        if dispute.disputant_id != user.id:
            raise ForbiddenException("Only the disputant can appeal")
        if dispute.tier == DisputeTier.ADMIN:
            raise ConflictException("Admin rulings are final and cannot be appealed")
        if dispute.status not in APPEALABLE_STATUSES:
            raise ConflictException("Only resolved or dismissed disputes can be appealed")

        config = await self.get_config()
        now = datetime.now(UTC)
        window_ends = dispute.appeal_deadline
        if window_ends is None and dispute.resolved_at is not None:
            window_ends = dispute.resolved_at + timedelta(hours=config.dispute_appeal_hours)
        if window_ends is not None and now > window_ends:
            raise ConflictException("The appeal window has expired")

        dispute.arbitrator_id = None
        dispute.resolution = None
        dispute.resolution_notes = None
        dispute.new_quality_score = None
        dispute.resolved_at = None
        dispute.appeal_deadline = now + timedelta(hours=config.dispute_appeal_hours)
        self._move(dispute, DisputeStatus.APPEALED, user.id, "Appealed", to_tier=DisputeTier.ADMIN)
        self.db.add(
            DisputeComment(
                dispute_id=dispute.id,
                user_id=user.id,
                content=f"Appeal reason: {appeal_reason}",
                visibility=CommentVisibility.ARBITRATOR,
            )
        )
        await self.db.flush()

        await self._publish(EVENT_DISPUTE_APPEALED, dispute, disputant_id=str(user.id))
        logger.info("Dispute %s appealed to admin tier", dispute.id)
        return dispute

    async def mediate(
        self, dispute_id: uuid.UUID, agreed_outcome: str, user: AuthenticatedUser
    ) -> MediationOutcome:
        """Record one party's agreement; the second, distinct party closes it.

        Agreement is presence-based: the two outcome texts are not compared.
        """
        dispute = await self._get_dispute(dispute_id, for_update=True)
        if user.id not in (dispute.disputant_id, dispute.reviewer_id):
            raise ForbiddenException("Only dispute parties can mediate")
        self._ensure_active(dispute)
        if dispute.status != DisputeStatus.MEDIATION:
            raise ConflictException("Dispute is not in mediation")

        now = datetime.now(UTC)
        if is_deadline_past(dispute.mediation_deadline, now):
            raise ConflictException("The mediation window has expired")

        self.db.add(
            DisputeComment(
                dispute_id=dispute.id,
                user_id=user.id,
                content=f"Mediation agreement: {agreed_outcome}",
                visibility=CommentVisibility.PARTIES_ONLY,
            )
        )

        if dispute.mediation_proposed_by is None or dispute.mediation_proposed_by == user.id:
            dispute.mediation_proposed_by = user.id
            dispute.mediation_proposed_outcome = agreed_outcome
            dispute.mediation_proposed_at = now
            await self.db.flush()
            await self._publish(
                EVENT_DISPUTE_MEDIATION_PROPOSED, dispute, proposed_by=str(user.id)
            )
            logger.info("Mediation on dispute %s proposed by %s", dispute.id, user.id)
            return MediationOutcome(dispute=dispute, confirmed=False)

        dispute.resolution_notes = agreed_outcome
        dispute.resolved_at = now
        self._move(dispute, DisputeStatus.MEDIATED, user.id, "Mediation confirmed by both parties")
        await self._refund_stake(dispute, dispute.xp_stake, "dispute mediated")
        await self.db.flush()

        await self._publish(EVENT_DISPUTE_MEDIATED, dispute, confirmed_by=str(user.id))
        logger.info("Dispute %s mediated", dispute.id)
        return MediationOutcome(dispute=dispute, confirmed=True)

    async def withdraw(self, dispute_id: uuid.UUID, user: AuthenticatedUser) -> Dispute:
        dispute = await self._get_dispute(dispute_id, for_update=True)
        if dispute.disputant_id != user.id:
            raise ForbiddenException("Only the disputant can withdraw")
        self._ensure_active(dispute)
        if dispute.status not in WITHDRAWABLE_STATUSES:
            raise ConflictException("Dispute can no longer be withdrawn")

        config = await self.get_config()
        self._move(dispute, DisputeStatus.WITHDRAWN, user.id, "Withdrawn by disputant")
        dispute.resolved_at = datetime.now(UTC)
        await self._refund_stake(
            dispute, withdrawal_refund(config, dispute.xp_stake), "dispute withdrawn"
        )

        submission = await self._get_submission(dispute.submission_id, for_update=True)
        if submission.review_status == SubmissionReviewStatus.DISPUTED:
            submission.review_status = SubmissionReviewStatus(
                (dispute.review_snapshot or {}).get(
                    "review_status", SubmissionReviewStatus.REJECTED.value
                )
            )
        await self.db.flush()

        await self._publish(EVENT_DISPUTE_WITHDRAWN, dispute, refunded=dispute.xp_refunded)
        logger.info("Dispute %s withdrawn", dispute.id)
        return dispute

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    @staticmethod
    def _is_party(dispute: Dispute, user: AuthenticatedUser) -> bool:
        return user.id in (dispute.disputant_id, dispute.reviewer_id, dispute.arbitrator_id)

    @staticmethod
    def _can_see_comment(
        comment: DisputeComment, dispute: Dispute, user: AuthenticatedUser
    ) -> bool:
        if comment.visibility == CommentVisibility.PUBLIC or comment.user_id == user.id:
            return True
        if user.is_admin:
            return True
        if comment.visibility == CommentVisibility.ARBITRATOR:
            return user.id == dispute.arbitrator_id or user.role == UserRole.COUNCIL
        return DisputeService._is_party(dispute, user)

    async def list_comments(
        self, dispute_id: uuid.UUID, user: AuthenticatedUser
    ) -> list[DisputeComment]:
        dispute = await self._get_dispute(dispute_id)
        result = await self.db.execute(
            select(DisputeComment)
            .where(DisputeComment.dispute_id == dispute_id)
            .order_by(DisputeComment.created_at.asc())
        )
        return [c for c in result.scalars().all() if self._can_see_comment(c, dispute, user)]

    async def add_comment(
        self,
        dispute_id: uuid.UUID,
        content: str,
        visibility: CommentVisibility,
        user: AuthenticatedUser,
    ) -> DisputeComment:
        dispute = await self._get_dispute(dispute_id)
        if not (self._is_party(dispute, user) or user.is_council_or_admin):
            raise ForbiddenException("Only dispute parties and arbitrators can comment")
        self._ensure_active(dispute)

        comment = DisputeComment(
            dispute_id=dispute.id,
            user_id=user.id,
            content=content,
            visibility=visibility,
        )
        self.db.add(comment)
        await self.db.flush()

        await self._publish(
            EVENT_DISPUTE_COMMENTED,
            dispute,
            comment_id=str(comment.id),
            author_id=str(user.id),
            visibility=visibility.value,
        )
        return comment

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_for_viewer(
        self, dispute_id: uuid.UUID, user: AuthenticatedUser
    ) -> tuple[Dispute, bool]:
        """Return the dispute and whether the caller may see the full record."""
        dispute = await self._get_dispute(dispute_id)
        return dispute, self._is_party(dispute, user) or user.is_council_or_admin

    def _visibility_filter(self, user: AuthenticatedUser, mine_only: bool):
        if user.is_council_or_admin and not mine_only:
            return None
        return or_(
            Dispute.disputant_id == user.id,
            Dispute.reviewer_id == user.id,
            Dispute.arbitrator_id == user.id,
        )

    async def list_disputes(
        self,
        user: AuthenticatedUser,
        status: DisputeStatus | None = None,
        tier: DisputeTier | None = None,
        sprint_id: uuid.UUID | None = None,
        my_disputes: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Dispute], int]:
        conditions = []
        scope = self._visibility_filter(user, my_disputes)
        if scope is not None:
            conditions.append(scope)
        if status is not None:
            conditions.append(Dispute.status == status)
        if tier is not None:
            conditions.append(Dispute.tier == tier)
        if sprint_id is not None:
            conditions.append(Dispute.sprint_id == sprint_id)
        where = and_(*conditions) if conditions else None

        count_query = select(func.count()).select_from(Dispute)
        query = select(Dispute)
        if where is not None:
            count_query = count_query.where(where)
            query = query.where(where)

        total = (await self.db.execute(count_query)).scalar() or 0
        result = await self.db.execute(
            query.order_by(Dispute.created_at.desc()).offset(offset).limit(limit)
        )
        return list(result.scalars().all()), total

    async def pending_count(self, user: AuthenticatedUser) -> int:
        query = (
            select(func.count())
            .select_from(Dispute)
            .where(Dispute.status.in_(ACTIVE_STATUSES))
        )
        scope = self._visibility_filter(user, mine_only=False)
        if scope is not None:
            query = query.where(scope)
        return (await self.db.execute(query)).scalar() or 0

    async def arbitrator_stats(self, user: AuthenticatedUser) -> dict:
        empty = {"resolved_count": 0, "overturn_rate": 0.0, "avg_resolution_hours": 0.0}
        if not user.is_council_or_admin:
            return empty

        result = await self.db.execute(
            select(Dispute.resolution, Dispute.created_at, Dispute.resolved_at).where(
                Dispute.arbitrator_id == user.id,
                Dispute.resolution.is_not(None),
                Dispute.resolved_at.is_not(None),
            )
        )
        rows = result.all()
        if not rows:
            return empty

        overturned = sum(1 for row in rows if row.resolution == DisputeResolution.OVERTURNED)
        hours = [(row.resolved_at - row.created_at).total_seconds() / 3600 for row in rows]
        return {
            "resolved_count": len(rows),
            "overturn_rate": round(overturned / len(rows) * 100, 1),
            "avg_resolution_hours": round(sum(hours) / len(hours), 1),
        }

    async def reviewer_accuracy(
        self, user: AuthenticatedUser, reviewer_id: uuid.UUID | None = None
    ) -> list[dict]:
        if not user.is_council_or_admin:
            raise ForbiddenException("Reviewer accuracy is restricted to council and admin")

        overturned = func.count().filter(Dispute.resolution == DisputeResolution.OVERTURNED)
        query = select(Dispute.reviewer_id, func.count(), overturned).group_by(Dispute.reviewer_id)
        if reviewer_id is not None:
            query = query.where(Dispute.reviewer_id == reviewer_id)
        rows = (await self.db.execute(query)).all()

        stats = []
        for rid, total, overturned_count in rows:
            stats.append({
                "reviewer_id": rid,
                "total_disputed": total,
                "overturned_count": overturned_count,
                "accuracy_rate": round((total - overturned_count) / total * 100, 1),
            })
        if reviewer_id is not None and not stats:
            stats.append({
                "reviewer_id": reviewer_id,
                "total_disputed": 0,
                "overturned_count": 0,
                "accuracy_rate": 100.0,
            })
        return stats
