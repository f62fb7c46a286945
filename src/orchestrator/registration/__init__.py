"""Commit-reveal registration support."""

from src.orchestrator.registration.waiter import CommitRevealWaiter

__all__ = ["CommitRevealWaiter"]
