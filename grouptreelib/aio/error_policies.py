"""
Error handling policies for GroupTreeLib.

This module provides a flexible error handling system through the Policy
pattern, letting callers decide what happens when a nested group cannot be
resolved or listed during expansion. Policies only ever see branch errors
(NotFound, Ambiguous, MalformedIdentifier); directory outages are fatal and
never reach them.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from ..exceptions import ErrorThresholdExceeded


logger = logging.getLogger(__name__)


class ErrorPolicy(ABC):
    """
    Base class for error handling policies.

    Subclasses implement different strategies for handling a group whose
    expansion failed.
    """

    @abstractmethod
    async def handle(self, error: Exception, group: Any) -> None:
        """
        Handle an error raised while expanding a nested group.

        Args:
            error: The branch error that was raised
            group: The group being expanded when the error occurred

        Returns:
            None to skip the branch and continue with its siblings,
            or re-raises to stop the traversal.
        """
        pass

    @staticmethod
    def _record(error: Exception, group: Any) -> Dict[str, Any]:
        return {
            'group': getattr(group, 'identifier', group),
            'error': error,
            'error_type': type(error).__name__,
            'error_message': str(error),
        }


class FailFastPolicy(ErrorPolicy):
    """
    Policy that immediately re-raises any error, stopping traversal.

    Useful when a partial membership picture is worse than none.
    """

    async def handle(self, error: Exception, group: Any) -> None:
        """Re-raise the error immediately."""
        raise error


class SkipBranchPolicy(ErrorPolicy):
    """
    Policy that logs a warning and skips the failed branch.

    This is the default. The failed group contributes no further members;
    its siblings are still expanded. Errors are collected for later
    inspection.
    """

    def __init__(self):
        """Initialize the policy."""
        self.errors: List[Dict[str, Any]] = []

    async def handle(self, error: Exception, group: Any) -> None:
        """Log the error, record it and skip the branch."""
        record = self._record(error, group)
        self.errors.append(record)
        logger.warning(
            "Skipping group '%s': %s: %s",
            record['group'], record['error_type'], record['error_message']
        )

    def get_statistics(self) -> dict:
        """
        Get statistics about errors encountered.

        Returns:
            Dictionary with error counts and details
        """
        by_type: Dict[str, int] = {}
        for record in self.errors:
            by_type[record['error_type']] = by_type.get(record['error_type'], 0) + 1
        return {
            'total_errors': len(self.errors),
            'by_type': by_type,
            'skipped_groups': [e['group'] for e in self.errors],
            'errors': self.errors,
        }


class ThresholdPolicy(ErrorPolicy):
    """
    Policy that skips failed branches up to a threshold, then fails.

    A few orphaned or ambiguous members are normal in a large forest; a
    flood of them usually means the wrong domain or credentials.
    """

    def __init__(self, max_errors: int = 10):
        """
        Initialize threshold policy.

        Args:
            max_errors: Maximum errors to tolerate before failing
        """
        self.max_errors = max_errors
        self.error_count = 0
        self.errors: List[Dict[str, Any]] = []

    async def handle(self, error: Exception, group: Any) -> None:
        """Skip the branch if under threshold, otherwise raise."""
        self.error_count += 1
        record = self._record(error, group)
        self.errors.append(record)

        if self.error_count > self.max_errors:
            raise ErrorThresholdExceeded(
                f"Error threshold exceeded ({self.max_errors} errors)"
            ) from error

        logger.warning(
            "[%d/%d] Skipping group '%s': %s",
            self.error_count, self.max_errors, record['group'], error
        )
