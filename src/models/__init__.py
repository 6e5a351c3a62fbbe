# Import all models so SQLAlchemy metadata is populated for Alembic autogenerate
from src.models.dispute import Dispute
from src.models.dispute_comment import DisputeComment
from src.models.dispute_transition import DisputeTransition
from src.models.enums import (
    CommentVisibility,
    DisputeReason,
    DisputeResolution,
    DisputeStatus,
    DisputeTier,
    DistributionType,
    EventStatus,
    IncompleteAction,
    RewardSettlementStatus,
    SprintStatus,
    SubmissionReviewStatus,
    TaskStatus,
    UserRole,
)
from src.models.event_outbox import EventOutbox
from src.models.org import Org
from src.models.reward_distribution import RewardDistribution
from src.models.reward_settlement_commit import RewardSettlementCommit
from src.models.sprint import Sprint
from src.models.sprint_snapshot import SprintSnapshot
from src.models.sprint_transition import SprintTransition
from src.models.task import Task
from src.models.task_submission import TaskSubmission
from src.models.task_template import TaskTemplate
from src.models.user_profile import UserProfile

__all__ = [
    "CommentVisibility",
    "Dispute",
    "DisputeComment",
    "DisputeReason",
    "DisputeResolution",
    "DisputeStatus",
    "DisputeTier",
    "DisputeTransition",
    "DistributionType",
    "EventOutbox",
    "EventStatus",
    "IncompleteAction",
    "Org",
    "RewardDistribution",
    "RewardSettlementCommit",
    "RewardSettlementStatus",
    "Sprint",
    "SprintSnapshot",
    "SprintStatus",
    "SprintTransition",
    "SubmissionReviewStatus",
    "Task",
    "TaskStatus",
    "TaskSubmission",
    "TaskTemplate",
    "UserProfile",
    "UserRole",
]
