"""
Lead Lifecycle Statuses
Every lead/job card carries exactly ONE of these statuses at any time
"""

from enum import Enum


class LeadStatus(str, Enum):
    # Lead side of the board
    NEW = "new"                    # Just came in
    QUALIFIED = "qualified"        # Worth pursuing
    QUOTED = "quoted"              # Estimate sent

    # Job side of the board
    BOOKED = "booked"              # On the schedule
    IN_PROGRESS = "in_progress"    # Plumber on site
    COMPLETED = "completed"        # Work done
    LOST = "lost"                  # Shares the completed column


class CardKind(str, Enum):
    LEAD = "lead"
    JOB = "job"


class UnknownStatus(ValueError):
    """A status outside the canonical seven was supplied."""


class UnknownPosition(ValueError):
    """A bucket position outside the canonical 1-6 range was supplied."""


# status -> bucket position. LOST and COMPLETED share the terminal column.
STATUS_TO_POSITION = {
    LeadStatus.NEW: 1,
    LeadStatus.QUALIFIED: 2,
    LeadStatus.QUOTED: 3,
    LeadStatus.BOOKED: 4,
    LeadStatus.IN_PROGRESS: 5,
    LeadStatus.COMPLETED: 6,
    LeadStatus.LOST: 6,
}

# Inverse table. First status in canonical order wins a shared position,
# so 6 reads back as COMPLETED.
POSITION_TO_STATUS = {}
for _status, _position in STATUS_TO_POSITION.items():
    POSITION_TO_STATUS.setdefault(_position, _status)

# Cards in a bucket at or past this position are jobs, not leads
JOB_POSITION_THRESHOLD = 4

DEFAULT_STATUS = LeadStatus.NEW
DEFAULT_POSITION = STATUS_TO_POSITION[DEFAULT_STATUS]

# Returned by bucket resolution when no buckets are configured
EMPTY_BUCKET_ID = ""


STATUS_LABELS = {
    LeadStatus.NEW: "New",
    LeadStatus.QUALIFIED: "Qualified",
    LeadStatus.QUOTED: "Quoted",
    LeadStatus.BOOKED: "Booked",
    LeadStatus.IN_PROGRESS: "In Progress",
    LeadStatus.COMPLETED: "Completed",
    LeadStatus.LOST: "Lost",
}

# Badge colors for the board front end
STATUS_COLORS = {
    LeadStatus.NEW: {"bg": "#dbeafe", "text": "#1d4ed8", "border": "#93c5fd"},
    LeadStatus.QUALIFIED: {"bg": "#f3e8ff", "text": "#7c3aed", "border": "#c4b5fd"},
    LeadStatus.QUOTED: {"bg": "#fef9c3", "text": "#a16207", "border": "#fde047"},
    LeadStatus.BOOKED: {"bg": "#ffedd5", "text": "#c2410c", "border": "#fdba74"},
    LeadStatus.IN_PROGRESS: {"bg": "#fef3c7", "text": "#b45309", "border": "#fcd34d"},
    LeadStatus.COMPLETED: {"bg": "#dcfce7", "text": "#15803d", "border": "#86efac"},
    LeadStatus.LOST: {"bg": "#fee2e2", "text": "#dc2626", "border": "#fca5a5"},
}

FALLBACK_COLOR = {"bg": "#f3f4f6", "text": "#6b7280", "border": "#f3f4f6"}


def status_style(status) -> dict:
    """Label and badge colors for a status, gray for anything unknown"""
    try:
        member = LeadStatus(status)
    except ValueError:
        return {"label": str(status), **FALLBACK_COLOR}
    return {"label": STATUS_LABELS[member], **STATUS_COLORS[member]}
