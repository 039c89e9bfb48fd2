"""Environment-driven settings for the room engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .errors import ConfigurationError

_DOTENV_LOADED = False

DEFAULT_BOARD_SIZE = 10
DEFAULT_WIN_LENGTH = 5
DEFAULT_ROOM_CODE_LENGTH = 4
DEFAULT_ROOM_CODE_ATTEMPTS = 8


class RestartPolicy(str, Enum):
    """Who may start a rematch once a game has finished."""

    PARTICIPANTS = "participants"
    HOST = "host"


def load_dotenv(path: str | Path = ".env") -> None:
    """Load variables from a .env file without overriding the real environment."""
    global _DOTENV_LOADED
    if _DOTENV_LOADED:
        return

    dotenv_path = Path(path)
    if not dotenv_path.exists():
        _DOTENV_LOADED = True
        return

    for raw_line in dotenv_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[7:].strip()
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip()
        if value.startswith(("'", '"')) and value.endswith(("'", '"')) and len(value) >= 2:
            value = value[1:-1]
        os.environ.setdefault(key, value)

    _DOTENV_LOADED = True


def getenv_any(*names: str, default: str | None = None) -> str | None:
    """Return the first non-empty env var from a list of candidate names."""
    load_dotenv()
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return default


def _int_setting(name: str, default: int, *, minimum: int) -> int:
    raw = getenv_any(name, default=str(default)) or str(default)
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer; received {raw!r}.") from exc
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}; received {value}.")
    return value


@dataclass(frozen=True)
class EngineSettings:
    """Resolved runtime configuration."""

    board_size: int = DEFAULT_BOARD_SIZE
    win_length: int = DEFAULT_WIN_LENGTH
    room_code_length: int = DEFAULT_ROOM_CODE_LENGTH
    room_code_attempts: int = DEFAULT_ROOM_CODE_ATTEMPTS
    restart_policy: RestartPolicy = RestartPolicy.PARTICIPANTS
    store_path: Path | None = None
    event_log_dir: Path | None = None
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.win_length > self.board_size:
            raise ConfigurationError(
                f"win_length ({self.win_length}) cannot exceed board_size ({self.board_size})."
            )

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """Build settings from OMOK_* environment variables."""
        raw_policy = (getenv_any("OMOK_RESTART_POLICY", default=RestartPolicy.PARTICIPANTS.value) or "").strip().lower()
        try:
            restart_policy = RestartPolicy(raw_policy)
        except ValueError as exc:
            raise ConfigurationError(
                f"OMOK_RESTART_POLICY must be one of {[policy.value for policy in RestartPolicy]}; received {raw_policy!r}."
            ) from exc

        store_path = getenv_any("OMOK_STORE_PATH")
        event_log_dir = getenv_any("OMOK_EVENT_LOG_DIR")
        return cls(
            board_size=_int_setting("OMOK_BOARD_SIZE", DEFAULT_BOARD_SIZE, minimum=1),
            win_length=_int_setting("OMOK_WIN_LENGTH", DEFAULT_WIN_LENGTH, minimum=2),
            room_code_length=_int_setting("OMOK_ROOM_CODE_LENGTH", DEFAULT_ROOM_CODE_LENGTH, minimum=1),
            room_code_attempts=_int_setting("OMOK_ROOM_CODE_ATTEMPTS", DEFAULT_ROOM_CODE_ATTEMPTS, minimum=1),
            restart_policy=restart_policy,
            store_path=Path(store_path) if store_path else None,
            event_log_dir=Path(event_log_dir) if event_log_dir else None,
            log_level=(getenv_any("OMOK_LOG_LEVEL", default="INFO") or "INFO").upper(),
        )
