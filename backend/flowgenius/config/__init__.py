"""
Configuration Module

Environment-backed settings for the FlowGenius workflow service.
"""
from flowgenius.config.base import BaseConfig, configure_logging, read_env_defaults
from flowgenius.config.workflow_config import WorkflowConfig

__all__ = ['BaseConfig', 'WorkflowConfig', 'configure_logging', 'read_env_defaults']
