"""Structured logging configuration for the application."""

from datetime import UTC, datetime
import json
import logging
import sys

from evote.core.config import settings


class JSONFormatter(logging.Formatter):
    """Format logs as JSON for structured logging in production."""

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        log_data = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Add extra fields if present
        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class StandardFormatter(logging.Formatter):
    """Human-readable formatter for development."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def setup_logging() -> None:
    """Configure application logging based on environment."""
    log_level = logging.INFO
    if settings.ENVIRONMENT == "development":
        log_level = logging.DEBUG
    elif settings.ENVIRONMENT == "production":
        log_level = logging.WARNING

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)

    # Use JSON formatter in production, standard in development
    if settings.ENVIRONMENT == "production":
        formatter = JSONFormatter()
    else:
        formatter = StandardFormatter()

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Set specific log levels for noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)
    logging.getLogger("fastapi").setLevel(logging.INFO)
    logging.getLogger("asyncpg").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name."""
    return logging.getLogger(name)


class ElectionEventLogger:
    """Specialized logger for ballot and results events."""

    def __init__(self) -> None:
        self.logger = get_logger("elections.events")

    def log_vote_cast(self, election_id: str, voter_id: str, vote_id: str) -> None:
        """Log a recorded ballot."""
        self.logger.info(
            f"Vote recorded in election: {election_id}",
            extra={
                "extra_fields": {
                    "event_type": "vote_cast",
                    "election_id": election_id,
                    "voter_id": voter_id,
                    "vote_id": vote_id,
                }
            },
        )

    def log_vote_rejected(self, election_id: str, voter_id: str, reason: str) -> None:
        """Log a refused ballot together with the denial reason."""
        self.logger.warning(
            f"Vote rejected in election {election_id}: {reason}",
            extra={
                "extra_fields": {
                    "event_type": "vote_rejected",
                    "election_id": election_id,
                    "voter_id": voter_id,
                    "reason": reason,
                }
            },
        )

    def log_results_approved(
        self, election_id: str, commissioner_id: str, all_approved: bool
    ) -> None:
        """Log a commissioner approval."""
        self.logger.info(
            f"Results approved by commissioner {commissioner_id} for election: {election_id}",
            extra={
                "extra_fields": {
                    "event_type": "results_approved",
                    "election_id": election_id,
                    "commissioner_id": commissioner_id,
                    "all_approved": all_approved,
                }
            },
        )

    def log_results_published(self, election_id: str) -> None:
        """Log the transition that made results public."""
        self.logger.info(
            f"Results published for election: {election_id}",
            extra={
                "extra_fields": {
                    "event_type": "results_published",
                    "election_id": election_id,
                }
            },
        )

    def log_unauthorized_access(
        self,
        resource: str,
        user_id: str | None = None,
        reason: str | None = None,
    ) -> None:
        """Log a refused access to a protected resource."""
        self.logger.warning(
            f"Unauthorized access attempt to: {resource}",
            extra={
                "extra_fields": {
                    "event_type": "unauthorized_access",
                    "resource": resource,
                    "user_id": user_id,
                    "reason": reason,
                }
            },
        )


# Global election event logger instance
election_logger = ElectionEventLogger()
