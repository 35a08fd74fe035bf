"""Application constants."""

APP_NAME = "cp-geocoder"
APP_VERSION = "1.0"
DEFAULT_USER_AGENT = f"{APP_NAME}/{APP_VERSION}"
COMMANDS = ("geocode", "status")
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20
JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "row",
    "strategy",
    "event",
    "status",
    "attempt",
    "duration_ms",
    "rows_in",
    "rows_out",
    "error_code",
    "message",
)


def build_user_agent(email: str | None) -> str:
    if email:
        return f"{DEFAULT_USER_AGENT} ({email})"
    return DEFAULT_USER_AGENT
