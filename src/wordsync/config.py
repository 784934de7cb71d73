"""Configuration settings for the progress tracker."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)


# Define data directories from environment variables
DATA_DIR = Path(os.getenv("DATA_DIR", "./data"))

# Learning settings
TIER_INTERVAL_HOURS = {
    "new": 4,
    "learning": 24,
    "familiar": 72,
    "mastered": 168,
}
MAX_RETRIES = 3


def ensure_directories() -> None:
    """Ensure all required directories exist."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR / 'wordsync.db'}")
    echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = os.getenv("LOG_LEVEL", "INFO")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dir: Optional[str] = os.getenv("LOG_DIR", None)
    rotation: str = os.getenv("LOG_ROTATION", "midnight")
    interval: int = int(os.getenv("LOG_INTERVAL", "1"))
    backup_count: int = int(os.getenv("LOG_BACKUP_COUNT", "7"))


@dataclass
class LearningSettings:
    """Spaced repetition settings."""
    interval_hours: dict[str, int] = field(default_factory=lambda: dict(TIER_INTERVAL_HOURS))
    familiar_min_practice: int = int(os.getenv("FAMILIAR_MIN_PRACTICE", "3"))
    familiar_min_rate: float = float(os.getenv("FAMILIAR_MIN_RATE", "0.7"))
    mastered_min_practice: int = int(os.getenv("MASTERED_MIN_PRACTICE", "5"))
    mastered_min_rate: float = float(os.getenv("MASTERED_MIN_RATE", "0.8"))
    due_limit: int = int(os.getenv("DUE_LIMIT", "10"))
    max_session_size: int = int(os.getenv("MAX_SESSION_SIZE", "20"))


@dataclass
class EvaluationSettings:
    """Sentence evaluation settings."""
    url: Optional[str] = os.getenv("EVALUATOR_URL")
    token: Optional[str] = os.getenv("EVALUATOR_TOKEN")
    timeout_seconds: float = float(os.getenv("EVALUATOR_TIMEOUT_SECONDS", "60"))
    # Fallback heuristic weights
    word_present_points: int = 40
    min_words: int = int(os.getenv("FALLBACK_MIN_WORDS", "5"))
    length_points: int = 20
    punctuation_points: int = 10
    capitalization_points: int = 10
    context_points: int = 20
    pass_score: int = int(os.getenv("FALLBACK_PASS_SCORE", "60"))
    # Verdict thresholds
    excellent_score: int = 90
    good_score: int = 70
    partial_score: int = 50
    # Needs-work ratio boundaries for the suggested next action
    continue_below: float = 0.25
    review_below: float = 0.5


@dataclass
class SyncSettings:
    """Remote synchronization settings."""
    remote_url: Optional[str] = os.getenv("REMOTE_STORE_URL")
    remote_token: Optional[str] = os.getenv("REMOTE_STORE_TOKEN")
    timeout_seconds: float = float(os.getenv("STORE_TIMEOUT_SECONDS", "30"))
    max_retries: int = int(os.getenv("MAX_RETRIES", str(MAX_RETRIES)))
    interval_seconds: int = int(os.getenv("SYNC_INTERVAL_SECONDS", "300"))


@dataclass
class MonitoringSettings:
    """Prometheus exporter settings."""
    enabled: bool = os.getenv("METRICS_ENABLED", "false").lower() == "true"
    port: int = int(os.getenv("METRICS_PORT", "9090"))


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_learning_settings() -> LearningSettings:
    """Get learning settings."""
    return LearningSettings()


def get_evaluation_settings() -> EvaluationSettings:
    """Get evaluation settings."""
    return EvaluationSettings()


def get_sync_settings() -> SyncSettings:
    """Get sync settings."""
    return SyncSettings()


def get_monitoring_settings() -> MonitoringSettings:
    """Get monitoring settings."""
    return MonitoringSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    learning: LearningSettings = field(default_factory=get_learning_settings)
    evaluation: EvaluationSettings = field(default_factory=get_evaluation_settings)
    sync: SyncSettings = field(default_factory=get_sync_settings)
    monitoring: MonitoringSettings = field(default_factory=get_monitoring_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        missing = set(TIER_INTERVAL_HOURS) - set(self.learning.interval_hours)
        if missing:
            raise ValueError(f"Missing interval for tiers: {sorted(missing)}")

        if any(hours <= 0 for hours in self.learning.interval_hours.values()):
            raise ValueError("Tier intervals must be positive")

        for rate in (self.learning.familiar_min_rate, self.learning.mastered_min_rate):
            if rate < 0 or rate > 1:
                raise ValueError("Promotion success rates must be between 0 and 1")

        if self.evaluation.pass_score < 0 or self.evaluation.pass_score > 100:
            raise ValueError("FALLBACK_PASS_SCORE must be between 0 and 100")

        if not (0 <= self.evaluation.continue_below <= self.evaluation.review_below <= 1):
            raise ValueError("Next action ratios must satisfy 0 <= continue <= review <= 1")

        if self.evaluation.timeout_seconds <= 0 or self.sync.timeout_seconds <= 0:
            raise ValueError("Timeouts must be positive")

        if self.sync.max_retries < 0:
            raise ValueError("MAX_RETRIES cannot be negative")

        if self.sync.interval_seconds < 1:
            raise ValueError("SYNC_INTERVAL_SECONDS must be positive")


# Create global settings instance
settings = Settings()
settings.validate()
