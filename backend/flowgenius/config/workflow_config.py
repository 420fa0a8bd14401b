"""
Workflow Configuration.

Controls debug logging, the OpenAI credentials and transcription
model, client retry policy, node retry and circuit-breaker policy and
diagnostics history size.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Dict, List, Set

from flowgenius.config.base import BaseConfig


@dataclass
class WorkflowConfig(BaseConfig):
    """Runtime settings for the workflow service."""

    debug_mode: bool = False
    log_level: str = "INFO"
    openai_api_key: str = ""
    transcription_model: str = "whisper-1"
    retry_count: int = 3
    retry_delay_ms: int = 1000
    max_history: int = 100
    node_retry_attempts: int = 3
    node_retry_delay_ms: int = 1000
    node_retry_max_delay_ms: int = 10000
    circuit_failure_threshold: int = 5
    circuit_reset_ms: int = 60000

    _ENV_MAP: ClassVar[Dict[str, str]] = {
        "debug_mode": "FLOWGENIUS_DEBUG",
        "log_level": "FLOWGENIUS_LOG_LEVEL",
        "openai_api_key": "OPENAI_API_KEY",
        "transcription_model": "FLOWGENIUS_TRANSCRIPTION_MODEL",
        "retry_count": "FLOWGENIUS_RETRY_COUNT",
        "retry_delay_ms": "FLOWGENIUS_RETRY_DELAY_MS",
        "max_history": "FLOWGENIUS_MAX_HISTORY",
        "node_retry_attempts": "FLOWGENIUS_NODE_RETRY_ATTEMPTS",
        "node_retry_delay_ms": "FLOWGENIUS_NODE_RETRY_DELAY_MS",
        "node_retry_max_delay_ms": "FLOWGENIUS_NODE_RETRY_MAX_DELAY_MS",
        "circuit_failure_threshold": "FLOWGENIUS_CIRCUIT_FAILURE_THRESHOLD",
        "circuit_reset_ms": "FLOWGENIUS_CIRCUIT_RESET_MS",
    }
    _SECURE_FIELDS: ClassVar[Set[str]] = {"openai_api_key"}

    @classmethod
    def get_config_name(cls) -> str:
        return "workflow"

    def validate(self) -> List[str]:
        """Return a list of problems; empty when the config is usable."""
        errors: List[str] = []
        if self.retry_count < 1:
            errors.append("retry_count must be at least 1")
        if self.retry_delay_ms < 0:
            errors.append("retry_delay_ms must not be negative")
        if self.max_history < 1:
            errors.append("max_history must be at least 1")
        if self.node_retry_attempts < 1:
            errors.append("node_retry_attempts must be at least 1")
        if self.node_retry_delay_ms < 0 or self.node_retry_max_delay_ms < self.node_retry_delay_ms:
            errors.append("node retry delays must satisfy 0 <= delay <= max delay")
        if self.circuit_failure_threshold < 1:
            errors.append("circuit_failure_threshold must be at least 1")
        if self.circuit_reset_ms < 0:
            errors.append("circuit_reset_ms must not be negative")
        return errors
