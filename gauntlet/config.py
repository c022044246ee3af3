"""
Engine configuration - read from environment variables.

All settings have development defaults so the engine runs with no
environment at all. Values are read once, when EngineConfig.from_env()
is called.
"""

from __future__ import annotations
from dataclasses import dataclass, field
import os


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


@dataclass
class EngineConfig:
    """
    Runtime settings for the engine and API.

    Environment:
        GAUNTLET_ENV               development / production
        GAUNTLET_JUDGE_URL         Base URL of the Judge/Question service
        GAUNTLET_JUDGE_TIMEOUT     Judge call timeout in seconds
        GAUNTLET_DIRECTORY_URL     Base URL of the project directory (optional)
        GAUNTLET_SUBJECTS_FILE     JSON file of subjects when no directory URL
        GAUNTLET_VIVA_QUESTIONS    Size of the Viva question bank
        GAUNTLET_MAX_BATTLE_TURNS  Battle turn cap (0 disables)
        GAUNTLET_IDLE_TIMEOUT      Seconds before an idle session is abandoned
        GAUNTLET_RETENTION         Seconds a closed session stays readable
        GAUNTLET_SWEEP_INTERVAL    Seconds between registry sweeps
        GAUNTLET_LOG_LEVEL         Log level name
        ALLOWED_ORIGINS            Comma-separated CORS origins
    """
    env: str = "development"
    judge_url: str = "http://127.0.0.1:8001"
    judge_timeout: float = 30.0
    directory_url: str | None = None
    subjects_file: str | None = None
    viva_question_count: int = 5
    max_battle_turns: int = 20
    idle_timeout: float = 1800.0
    retention: float = 600.0
    sweep_interval: float = 60.0
    log_level: str = "INFO"
    allowed_origins: list[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Build a config from the current process environment."""
        config = cls(
            env=os.getenv("GAUNTLET_ENV", "development"),
            judge_url=os.getenv("GAUNTLET_JUDGE_URL", "http://127.0.0.1:8001"),
            judge_timeout=_env_float("GAUNTLET_JUDGE_TIMEOUT", 30.0),
            directory_url=os.getenv("GAUNTLET_DIRECTORY_URL") or None,
            subjects_file=os.getenv("GAUNTLET_SUBJECTS_FILE") or None,
            viva_question_count=_env_int("GAUNTLET_VIVA_QUESTIONS", 5),
            max_battle_turns=_env_int("GAUNTLET_MAX_BATTLE_TURNS", 20),
            idle_timeout=_env_float("GAUNTLET_IDLE_TIMEOUT", 1800.0),
            retention=_env_float("GAUNTLET_RETENTION", 600.0),
            sweep_interval=_env_float("GAUNTLET_SWEEP_INTERVAL", 60.0),
            log_level=os.getenv("GAUNTLET_LOG_LEVEL", "INFO"),
            allowed_origins=[
                origin.strip()
                for origin in os.getenv("ALLOWED_ORIGINS", "*").split(",")
                if origin.strip()
            ],
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Reject settings the engine cannot run with."""
        if self.viva_question_count < 1:
            raise ValueError("viva_question_count must be at least 1")
        if self.max_battle_turns < 0:
            raise ValueError("max_battle_turns must be >= 0 (0 disables the cap)")
        if self.judge_timeout <= 0:
            raise ValueError("judge_timeout must be positive")
        if self.idle_timeout <= 0 or self.sweep_interval <= 0:
            raise ValueError("idle_timeout and sweep_interval must be positive")
        if self.retention < 0:
            raise ValueError("retention must be >= 0")
