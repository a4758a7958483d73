import os
from dataclasses import dataclass

from dotenv import find_dotenv, load_dotenv

from ledger_categorizer.domain.labels import parse_id_list
from ledger_categorizer.logger import get_logger

logger = get_logger(__name__)


CONFIG_FILENAME = "config.yaml"

_CONFIG_FILE_PATH: str | None = None
_CONFIG_FILE_VALUES: dict[str, str] = {}
_EXTERNAL_ENV_KEYS: set[str] = set()

_CONFIG_KEYS = (
    "LOG_LEVEL",
    "DATA_DIR",
    "LOG_DIR",
    "AUTO_APPLY_ENABLED",
    "AUTO_APPLY_MIN_CONFIDENCE",
    "AUTO_APPLY_SCHEDULE",
    "AUTO_APPLY_INTERVAL_MINUTES",
    "AUTO_APPLY_BATCH_SIZE",
    "AUTO_APPLY_MAX_RETRIES",
    "AUTO_APPLY_COOLDOWN_SECONDS",
    "AUTO_APPLY_ACCOUNT_IDS",
    "AUTO_APPLY_EXCLUDED_CATEGORY_IDS",
    "UNDO_RETENTION_DAYS",
    "UNDO_RATE_ALERT_THRESHOLD",
)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _resolve_dotenv_path() -> str | None:
    config_dir = os.getenv("CONFIG_DIR")
    if config_dir:
        candidate = os.path.join(config_dir, ".env")
        if os.path.exists(candidate):
            return candidate
    resolved = find_dotenv(usecwd=True)
    return resolved or None


def _resolve_config_path() -> str:
    config_dir = os.getenv("CONFIG_DIR")
    if config_dir:
        return os.path.join(config_dir, CONFIG_FILENAME)
    cwd = os.getcwd()
    candidate = os.path.join(cwd, "config", CONFIG_FILENAME)
    if os.path.exists(candidate):
        return candidate
    return os.path.join(cwd, CONFIG_FILENAME)


def _strip_inline_comment(raw_value: str) -> str:
    in_single = False
    in_double = False
    for index, char in enumerate(raw_value):
        if char == '"' and not in_single:
            in_double = not in_double
        elif char == "'" and not in_double:
            in_single = not in_single
        elif char == "#" and not in_single and not in_double:
            return raw_value[:index].rstrip()
    return raw_value


def _unquote_value(raw_value: str) -> str:
    if len(raw_value) >= 2 and raw_value[0] == raw_value[-1] and raw_value[0] in {'"', "'"}:
        return raw_value[1:-1]
    return raw_value


def read_config_file(path: str | None) -> dict[str, str]:
    """Read flat ``KEY: value`` lines; blank values and comments are ignored."""
    if not path or not os.path.exists(path):
        return {}

    values: dict[str, str] = {}
    with open(path, encoding="utf-8") as handle:
        for line in handle:
            stripped = line.strip()
            if not stripped or stripped.startswith("#") or ":" not in stripped:
                continue
            key, raw_value = stripped.split(":", 1)
            key = key.strip()
            if not key:
                continue
            value = _unquote_value(_strip_inline_comment(raw_value).strip())
            if value:
                values[key] = value
    return values


def load_environment() -> None:
    global _CONFIG_FILE_PATH
    global _CONFIG_FILE_VALUES
    global _EXTERNAL_ENV_KEYS

    dotenv_path = _resolve_dotenv_path()
    if dotenv_path:
        load_dotenv(dotenv_path=dotenv_path, override=False)

    _EXTERNAL_ENV_KEYS = set(os.environ.keys())

    _CONFIG_FILE_PATH = _resolve_config_path()
    _CONFIG_FILE_VALUES = read_config_file(_CONFIG_FILE_PATH)

    for key in _CONFIG_KEYS:
        if key not in os.environ and key in _CONFIG_FILE_VALUES:
            os.environ[key] = _CONFIG_FILE_VALUES[key]


def is_env_override(name: str) -> bool:
    return name in _EXTERNAL_ENV_KEYS


def ensure_dir(path: str | None) -> None:
    if path and path not in {".", "./"}:
        os.makedirs(path, exist_ok=True)


def ensure_dirs(*paths: str | None) -> None:
    for path in paths:
        ensure_dir(path)


def get_env_int(name: str, default: int, min_value: int | None = None) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning(
            "[ENV] %s='%s' below minimum %s, using default %s.",
            name,
            raw,
            min_value,
            default,
        )
        return default
    return value


def get_env_float(name: str, default: float = 0.0) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
        return default


def get_env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if not raw:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
    return default


def get_env_ids(name: str) -> list[int]:
    raw = os.getenv(name)
    try:
        return parse_id_list(raw)
    except ValueError as exc:
        logger.warning("[ENV] Invalid %s='%s' (%s), ignoring.", name, raw, exc)
        return []


_ENV_KEYS_TO_LOG = _CONFIG_KEYS


def log_environment() -> None:
    logger.info("[ENV] Logging configured environment variables (config file: %s).", _CONFIG_FILE_PATH)
    for key in _ENV_KEYS_TO_LOG:
        raw_value = os.getenv(key)
        value = "<unset>" if raw_value is None else raw_value.replace("\r", "\\r").replace("\n", "\\n")
        source = "env" if is_env_override(key) else "config"
        logger.info("[ENV] %s=%s (%s)", key, value, source if raw_value is not None else "default")


DEFAULT_SCHEDULE = "0 6 * * *"
DEFAULT_MIN_CONFIDENCE = 0.85
DEFAULT_INTERVAL_MINUTES = 15
DEFAULT_BATCH_SIZE = 100
DEFAULT_MAX_RETRIES = 5
DEFAULT_COOLDOWN_SECONDS = 300.0
DEFAULT_UNDO_RETENTION_DAYS = 30
DEFAULT_UNDO_RATE_ALERT_THRESHOLD = 0.20


@dataclass(frozen=True)
class AutomationOptions:
    """Per-job options for the auto-apply worker, fixed for the process lifetime."""
    schedule: str | None = DEFAULT_SCHEDULE
    batch_size: int = DEFAULT_BATCH_SIZE
    max_retries: int = DEFAULT_MAX_RETRIES
    cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS
    undo_retention_days: int = DEFAULT_UNDO_RETENTION_DAYS
    undo_rate_alert_threshold: float = DEFAULT_UNDO_RATE_ALERT_THRESHOLD

    @classmethod
    def from_env(cls) -> "AutomationOptions":
        return cls(
            # An explicitly empty schedule falls back to the interval setting
            schedule=os.getenv("AUTO_APPLY_SCHEDULE", DEFAULT_SCHEDULE).strip() or None,
            batch_size=get_env_int("AUTO_APPLY_BATCH_SIZE", DEFAULT_BATCH_SIZE, min_value=1),
            max_retries=get_env_int("AUTO_APPLY_MAX_RETRIES", DEFAULT_MAX_RETRIES, min_value=0),
            cooldown_seconds=get_env_float("AUTO_APPLY_COOLDOWN_SECONDS", DEFAULT_COOLDOWN_SECONDS),
            undo_retention_days=get_env_int(
                "UNDO_RETENTION_DAYS",
                DEFAULT_UNDO_RETENTION_DAYS,
                min_value=0,
            ),
            undo_rate_alert_threshold=get_env_float(
                "UNDO_RATE_ALERT_THRESHOLD",
                DEFAULT_UNDO_RATE_ALERT_THRESHOLD,
            ),
        )


def default_auto_apply_values() -> dict[str, object]:
    """Static fallbacks for the auto-apply settings singleton."""
    return {
        "enabled": get_env_bool("AUTO_APPLY_ENABLED", False),
        "min_confidence": get_env_float("AUTO_APPLY_MIN_CONFIDENCE", DEFAULT_MIN_CONFIDENCE),
        "interval_minutes": get_env_int(
            "AUTO_APPLY_INTERVAL_MINUTES",
            DEFAULT_INTERVAL_MINUTES,
            min_value=1,
        ),
        "account_ids": get_env_ids("AUTO_APPLY_ACCOUNT_IDS"),
        "excluded_category_ids": get_env_ids("AUTO_APPLY_EXCLUDED_CATEGORY_IDS"),
    }


load_environment()

DATA_DIR = os.getenv("DATA_DIR", ".")
LOG_DIR = os.getenv("LOG_DIR")
CONFIG_DIR = os.getenv("CONFIG_DIR")

ensure_dirs(DATA_DIR, LOG_DIR, CONFIG_DIR)
