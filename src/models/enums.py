import enum


class UserRole(str, enum.Enum):
    GUEST = "guest"
    MEMBER = "member"
    COUNCIL = "council"
    ADMIN = "admin"


# ── Sprints & tasks ───────────────────────────────────────────────────────


class SprintStatus(str, enum.Enum):
    PLANNING = "planning"
    ACTIVE = "active"
    REVIEW = "review"
    DISPUTE_WINDOW = "dispute_window"
    SETTLEMENT = "settlement"
    COMPLETED = "completed"


class IncompleteAction(str, enum.Enum):
    BACKLOG = "backlog"
    NEXT_SPRINT = "next_sprint"


class TaskStatus(str, enum.Enum):
    BACKLOG = "backlog"
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    DONE = "done"


class SubmissionReviewStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    DISPUTED = "disputed"


# ── Disputes ──────────────────────────────────────────────────────────────


class DisputeStatus(str, enum.Enum):
    OPEN = "open"
    MEDIATION = "mediation"
    AWAITING_RESPONSE = "awaiting_response"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    APPEALED = "appealed"
    APPEAL_REVIEW = "appeal_review"
    DISMISSED = "dismissed"
    WITHDRAWN = "withdrawn"
    MEDIATED = "mediated"


class DisputeTier(str, enum.Enum):
    MEDIATION = "mediation"
    COUNCIL = "council"
    ADMIN = "admin"


class DisputeResolution(str, enum.Enum):
    OVERTURNED = "overturned"
    UPHELD = "upheld"
    COMPROMISE = "compromise"
    DISMISSED = "dismissed"


class DisputeReason(str, enum.Enum):
    REJECTED_UNFAIRLY = "rejected_unfairly"
    LOW_QUALITY_SCORE = "low_quality_score"
    PLAGIARISM_CLAIM = "plagiarism_claim"
    REVIEWER_BIAS = "reviewer_bias"
    OTHER = "other"


class CommentVisibility(str, enum.Enum):
    PARTIES_ONLY = "parties_only"
    ARBITRATOR = "arbitrator"
    PUBLIC = "public"


# ── Rewards ───────────────────────────────────────────────────────────────


class RewardSettlementStatus(str, enum.Enum):
    PENDING = "pending"
    COMMITTED = "committed"
    HELD = "held"
    KILLED = "killed"


class DistributionType(str, enum.Enum):
    EPOCH = "epoch"


# ── Event outbox ──────────────────────────────────────────────────────────


class EventStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
