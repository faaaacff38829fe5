"""Constants shared across codec, store, and reconciler modules."""

# Backlog folder layout (relative to the backlog root)
BACKLOG_DIR_NAME = "backlog"
TASKS_FOLDER = "tasks"
DRAFTS_FOLDER = "drafts"
COMPLETED_FOLDER = "completed"
ARCHIVE_TASKS_FOLDER = "archive/tasks"
ARCHIVE_DRAFTS_FOLDER = "archive/drafts"
DOCS_FOLDER = "docs"
DECISIONS_FOLDER = "decisions"
BACKLOG_DIRECTORIES = [
    TASKS_FOLDER,
    DRAFTS_FOLDER,
    COMPLETED_FOLDER,
    ARCHIVE_TASKS_FOLDER,
    ARCHIVE_DRAFTS_FOLDER,
    "archive/milestones",
    DOCS_FOLDER,
    DECISIONS_FOLDER,
    "milestones",
]
CONFIG_FILENAMES = ("config.yml", "config.yaml")

# Project defaults
DEFAULT_STATUSES = ["To Do", "In Progress", "Done"]
DRAFT_STATUS = "Draft"
DEFAULT_TASK_PREFIX = "task"
DRAFT_PREFIX = "draft"
DOC_PREFIX = "doc"
DECISION_PREFIX = "decision"

# Cross-branch defaults
DEFAULT_ACTIVE_BRANCH_DAYS = 30
DEFAULT_RESOLUTION_STRATEGY = "most_recent"
RESOLUTION_STRATEGIES = ("most_recent", "most_progressed")
BRANCH_BATCH_SIZE = 5
HYDRATE_BATCH_SIZE = 8
GIT_COMMAND_TIMEOUT_SEC = 10
GIT_MAX_CONCURRENT_COMMANDS = 4

# Ordinal spacing used when assigning fresh ordinals
DEFAULT_ORDINAL_STEP = 1000.0

# Status change hook timeout
STATUS_CALLBACK_TIMEOUT_SEC = 30
