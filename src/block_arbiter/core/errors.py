"""
Error taxonomy for the arbitration core.

- InvariantViolation: the state machines themselves are wrong. Never caught inside the core.
- InputRejected: malformed block input, refused before any state is touched.
- ConfigError: configuration refused at construction time.
"""

from __future__ import annotations


class ArbiterError(Exception):
    """Base class for all arbitration core errors."""


class InvariantViolation(ArbiterError, RuntimeError):
    pass


class InputRejected(ArbiterError, ValueError):
    pass


class ConfigError(ArbiterError, ValueError):
    pass


class UnknownPatternError(InvariantViolation, KeyError):
    def __init__(self, pattern: str):
        super().__init__(f"unknown pattern: {pattern}")
        self.pattern = pattern

    def __str__(self) -> str:
        return f"unknown pattern: {self.pattern}"
