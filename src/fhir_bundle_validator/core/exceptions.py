"""Core Exceptions Module.

This module defines custom exceptions used throughout the bundle validator.
They are raised at component seams; the rule evaluator and the pipeline turn
them into ``ValidationError`` records before anything reaches the caller.
"""

from typing import List, Optional


class BundleValidatorError(Exception):
    """Base exception for all bundle validator errors."""


class ConfigurationError(BundleValidatorError):
    """Raised when configuration is invalid or missing."""


class PathParseError(BundleValidatorError):
    """Raised when a path expression cannot be parsed."""

    def __init__(self, message: str, path: str = "", position: Optional[int] = None):
        """Initialize with the offending path and character position."""
        super().__init__(message)
        self.path = path
        self.position = position


class ConditionSyntaxError(PathParseError):
    """Raised when a filter condition cannot be parsed."""


class ScopeSelectionError(BundleValidatorError):
    """Raised when an instance scope cannot be applied to a bundle."""

    def __init__(self, message: str, condition: Optional[str] = None):
        """Initialize with the condition that failed."""
        super().__init__(message)
        self.condition = condition


class RuleConfigurationError(BundleValidatorError):
    """Raised when a rule definition is missing data it needs."""

    def __init__(self, message: str, invalid_params: Optional[List[str]] = None):
        """Initialize with the parameters that are unusable."""
        super().__init__(message)
        self.invalid_params = invalid_params or []


class RuleEvaluationError(BundleValidatorError):
    """Raised when a rule expression fails while being evaluated."""


class InvalidBundleError(BundleValidatorError):
    """Raised when the input document is not a usable Bundle."""

    def __init__(self, message: str, error_code: str = "INVALID_BUNDLE"):
        """Initialize with the input-shape error code."""
        super().__init__(message)
        self.error_code = error_code


class CollaboratorError(BundleValidatorError):
    """Raised when an external validation layer fails."""
