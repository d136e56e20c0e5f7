"""Configuration system for GroupTreeLib.

This module defines how callers specify an expansion: which traversal
discipline to use, how deep to go, how to label output, and how much
concurrency the directory service will tolerate.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional


DEFAULT_LEVELS_DEEP_TO_GO = 10


class TraversalMode(Enum):
    """Which traversal discipline and output shape to use."""
    FLAT = "flat"           # Depth-first, deduplicated users per root
    EXPANDED = "expanded"   # Level-order, every edge with level and kind


class OutputIdentifier(Enum):
    """Which identifier appears in output records."""
    GUID = "guid"                               # Stable object key
    DISTINGUISHED_NAME = "distinguished_name"   # DN or primary address


@dataclass
class ExpansionConfig:
    """Complete configuration for a membership expansion.

    Expanded mode is always depth-bounded; flat mode is unbounded unless
    ``levels_deep_to_go`` is set.
    """

    # Traversal discipline
    mode: TraversalMode = TraversalMode.FLAT

    # Depth control
    levels_deep_to_go: Optional[int] = None  # None: unbounded (flat) or 10 (expanded)
    starting_level: int = 1                  # Level of the root's direct members

    # Output
    output_identifier: OutputIdentifier = OutputIdentifier.GUID

    # Performance
    max_concurrent: int = 8                  # Concurrent group expansions
    timeout_seconds: Optional[float] = None  # Return partial result after this

    # Routing
    route_by_domain: bool = True

    # Error handling
    skip_errors: bool = True            # Skip failed branches vs fail fast
    error_policy: Optional[Any] = None  # Custom ErrorPolicy instance

    @classmethod
    def flat(cls, **kwargs) -> 'ExpansionConfig':
        """Create config for deduplicated flat expansion."""
        return cls(mode=TraversalMode.FLAT, **kwargs)

    @classmethod
    def expanded(
        cls,
        levels_deep_to_go: int = DEFAULT_LEVELS_DEEP_TO_GO,
        **kwargs
    ) -> 'ExpansionConfig':
        """Create config for level-bounded edge expansion.

        Args:
            levels_deep_to_go: Deepest level to record edges for

        Returns:
            ExpansionConfig for expanded mode
        """
        return cls(
            mode=TraversalMode.EXPANDED,
            levels_deep_to_go=levels_deep_to_go,
            **kwargs
        )

    def effective_depth(self) -> Optional[int]:
        """Deepest level to traverse, or None when unbounded."""
        if self.levels_deep_to_go is not None:
            return self.levels_deep_to_go
        if self.mode is TraversalMode.EXPANDED:
            return DEFAULT_LEVELS_DEEP_TO_GO
        return None

    def create_error_policy(self):
        """Build the error policy implied by this configuration."""
        if self.error_policy is not None:
            return self.error_policy

        from .aio.error_policies import FailFastPolicy, SkipBranchPolicy

        if self.skip_errors:
            return SkipBranchPolicy()
        return FailFastPolicy()

    def validate(self) -> List[str]:
        """Validate configuration for consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not isinstance(self.mode, TraversalMode):
            errors.append(f"mode must be a TraversalMode, got {self.mode!r}")

        if not isinstance(self.output_identifier, OutputIdentifier):
            errors.append(
                f"output_identifier must be an OutputIdentifier, got {self.output_identifier!r}"
            )

        if self.starting_level < 1:
            errors.append("starting_level must be at least 1")

        if self.levels_deep_to_go is not None:
            if self.levels_deep_to_go < 1:
                errors.append("levels_deep_to_go must be at least 1")
            elif self.levels_deep_to_go < self.starting_level:
                errors.append("levels_deep_to_go cannot be less than starting_level")

        if self.max_concurrent < 1:
            errors.append("max_concurrent must be positive")

        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            errors.append("timeout_seconds must be positive")

        if self.error_policy is not None and not hasattr(self.error_policy, 'handle'):
            errors.append("error_policy must provide a handle() coroutine")

        return errors
