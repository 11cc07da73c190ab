"""Default values shared across mdsflow modules."""

DEFAULT_PROJECT_ID = "default"
DEFAULT_CHECKPOINT_INTERVAL = 1
DEFAULT_LOOP_LIMIT_FACTOR = 10
DEFAULT_RETRY_ATTEMPTS = 1
DEFAULT_RETRY_DELAY_MS = 1000
MAX_RETRY_ATTEMPTS = 5

CONTINUATION_OPTIONS = ("continue", "regenerate", "edit")
CONTINUATION_VARIABLE = "action"
EDIT_CONTENT_VARIABLE = "content"
STEP_VISITS_KEY = "step_visits"

WORKFLOW_FILE_PATTERNS = ("*.workflow.yaml", "*.workflow.yml", "workflow.yaml", "workflow.yml")
