import os

from dotenv import load_dotenv

load_dotenv()

# ---------------------------------------------------------------------------
# Remote object API (Clarity PPM REST)
# ---------------------------------------------------------------------------

CLARITY_BASE_URL = os.getenv("CLARITY_BASE_URL", "").strip()
CLARITY_AUTH_TOKEN = os.getenv("CLARITY_AUTH_TOKEN") or None
CLARITY_SESSION_ID = os.getenv("CLARITY_SESSION_ID") or None
CLARITY_USERNAME = os.getenv("CLARITY_USERNAME") or None
CLARITY_PASSWORD = os.getenv("CLARITY_PASSWORD") or None
CLARITY_TIMEOUT = float(os.getenv("CLARITY_TIMEOUT", "30"))
CLARITY_MAX_RETRIES = int(os.getenv("CLARITY_MAX_RETRIES", "3"))

# hard ceiling enforced by the remote API regardless of the requested limit
MAX_RESULT_LIMIT = 500

# ---------------------------------------------------------------------------
# Reasoning service
# ---------------------------------------------------------------------------

OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4.1-mini")
LLM_TIMEOUT = float(os.getenv("LLM_TIMEOUT", "60"))

# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------

PORT = int(os.getenv("PORT", "3000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
SESSION_SWEEP_SECONDS = int(os.getenv("SESSION_SWEEP_SECONDS", "300"))

# ---------------------------------------------------------------------------
# Caches and conversation memory (seconds)
# ---------------------------------------------------------------------------

DISCOVERED_OBJECTS_TTL = 60 * 60
SCHEMA_TTL = 30 * 60
CAPABILITIES_TTL = 10 * 60
SESSION_EXPIRY = 30 * 60
MAX_HISTORY = 20

STANDARD_OBJECTS = [
    "projects",
    "tasks",
    "resources",
    "ideas",
    "risks",
    "issues",
    "timesheets",
    "assignments",
    "investments",
    "costPlans",
    "benefitPlans",
    "budgetPlans",
]

# objects the UI knows how to open and the planner recognises in free text
LINKABLE_OBJECTS = ["projects", "tasks", "resources", "ideas", "risks", "issues", "timesheets"]

PRIORITY_FIELDS = [
    "status",
    "name",
    "code",
    "manager",
    "owner",
    "priority",
    "department",
    "startDate",
    "finishDate",
    "percentComplete",
]

EXCLUDED_DATA_TYPES = {"LARGE_STRING", "ATTACHMENT", "BINARY", "BLOB"}

GROUPABLE_DATA_TYPES = {"STRING", "LOOKUP", "BOOLEAN", "NUMBER", "INTEGER"}

IDENTITY_FIELD = "_internalId"
DEFAULT_OBJECT = "projects"
