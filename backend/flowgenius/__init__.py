"""
FlowGenius — AI thought-partner workflow service.
"""

__version__ = "0.1.0"
