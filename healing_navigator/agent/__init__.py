"""Self-healing engine package."""

from .state import (
    Classification,
    ErrorKind,
    FixAttempt,
    Severity,
)
from .oracle import Oracle
from .classifier import (
    Classifier,
    FallbackClassifier,
    OracleClassifier,
    extract_json_block,
    parse_classification,
)
from .recovery import FixDispatcher, ResumeGate, extract_selectors_from_text
from .executor import RecoveryExecutor
from .workflow import StepAction, StepRunner, Workflow, WorkflowStep, load_workflow
from .graph import WorkflowGraph, WorkflowRunState

__all__ = [
    # State
    "Classification",
    "ErrorKind",
    "FixAttempt",
    "Severity",
    # Classification
    "Oracle",
    "Classifier",
    "FallbackClassifier",
    "OracleClassifier",
    "extract_json_block",
    "parse_classification",
    # Recovery
    "FixDispatcher",
    "ResumeGate",
    "extract_selectors_from_text",
    "RecoveryExecutor",
    # Workflows
    "StepAction",
    "StepRunner",
    "Workflow",
    "WorkflowStep",
    "load_workflow",
    "WorkflowGraph",
    "WorkflowRunState",
]
