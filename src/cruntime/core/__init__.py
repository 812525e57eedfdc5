"""Core orchestration module"""

from .orchestrator import Orchestrator
from .config import Config

__all__ = ["Orchestrator", "Config"]
