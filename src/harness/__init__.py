"""
Randomized, replayable invariant harness for the lending vault.
"""

from .actions import Action, ActionMsg, generate_actions
from .driver import HarnessReport, InvariantHarness, PropertyViolation, Violation, run_harness
from .properties import PROPERTY_REGISTRY, Observation, check_all

__all__ = [
    "Action",
    "ActionMsg",
    "generate_actions",
    "HarnessReport",
    "InvariantHarness",
    "PropertyViolation",
    "Violation",
    "run_harness",
    "PROPERTY_REGISTRY",
    "Observation",
    "check_all",
]
