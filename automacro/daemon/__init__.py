"""
Controller and interference monitor for running automation protocols.
"""

from .controller import AutomationController
from .interference import InterferenceMonitor

__all__ = ["AutomationController", "InterferenceMonitor"]
