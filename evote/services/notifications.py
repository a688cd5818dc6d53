"""Notifications fired after results are published.

Hooks are registered at startup and run after the publishing transaction
has committed. A failing hook is logged and skipped; publication is never
rolled back because of a notification.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
import inspect

from evote.core.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ResultsPublishedEvent:
    election_id: str
    election_title: str
    published_at: datetime | None
    total_votes: int = 0
    winners: list[str] = field(default_factory=list)


ResultsPublishedHook = Callable[[ResultsPublishedEvent], Awaitable[None] | None]

_results_published_hooks: list[ResultsPublishedHook] = []


def register_results_published_hook(hook: ResultsPublishedHook) -> None:
    if hook not in _results_published_hooks:
        _results_published_hooks.append(hook)


def clear_results_published_hooks() -> None:
    _results_published_hooks.clear()


def get_results_published_hooks() -> list[ResultsPublishedHook]:
    return list(_results_published_hooks)


async def dispatch_results_published(event: ResultsPublishedEvent) -> int:
    """Run every hook for ``event``. Returns how many hooks succeeded."""
    delivered = 0
    for hook in list(_results_published_hooks):
        try:
            result = hook(event)
            if inspect.isawaitable(result):
                await result
            delivered += 1
        except Exception as e:
            logger.error(
                f"Results published hook {getattr(hook, '__name__', hook)!r} failed "
                f"for election {event.election_id}: {str(e)}"
            )
    return delivered


def build_results_published_event(election: dict, results: dict) -> ResultsPublishedEvent:
    """Event payload from a published election and its results sheet."""
    per_candidate = results.get("per_candidate", [])
    top = max((c["vote_count"] for c in per_candidate), default=0)
    winners = [
        c["candidate_name"] for c in per_candidate if top > 0 and c["vote_count"] == top
    ]
    return ResultsPublishedEvent(
        election_id=str(election["id"]),
        election_title=election["title"],
        published_at=election.get("results_published_at"),
        total_votes=results.get("total_votes", 0),
        winners=winners,
    )
