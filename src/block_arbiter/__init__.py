"""Block-stream pattern tracking and bet arbitration core."""

from block_arbiter.core.config import ArbiterConfig, load_config
from block_arbiter.core.errors import ConfigError, InputRejected, InvariantViolation
from block_arbiter.core.runner import ArbiterSession, OutcomeRecord
from block_arbiter.engines.arbitration import Decision

__version__ = "0.1.0"
