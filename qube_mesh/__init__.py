"""Qube Mesh workflow engine.

Drives the five Qube Mesh conversational agents end to end through a
Playwright page: resolve controls from the matcher table, wait on the AI
activity heartbeat, and finish every run through the finalizer.
"""

from qube_mesh.config import Settings
from qube_mesh.context import WorkflowContext
from qube_mesh.errors import (
    ConfigurationError,
    DateFormatError,
    DateSelectionError,
    ElementNotFound,
    QubeMeshError,
    RequiredElementTimeout,
    ScenarioDataError,
    UnsupportedScenarioKey,
)
from qube_mesh.finalizer import EndedBy, WorkflowEnd, finalize

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "DateFormatError",
    "DateSelectionError",
    "ElementNotFound",
    "EndedBy",
    "QubeMeshError",
    "RequiredElementTimeout",
    "ScenarioDataError",
    "Settings",
    "UnsupportedScenarioKey",
    "WorkflowContext",
    "WorkflowEnd",
    "finalize",
]
