"""Remediation workflow: state machine, engine, events and fix evidence."""

from .transitions import VALID_TRANSITIONS, INITIAL_STATUS, get_available_transitions, is_valid_transition
from .models import WorkflowTransition, TransitionResult, BulkFailure, BulkTransitionResult
from .events import WorkflowEvent, WorkflowEventBus, WorkflowEventType
from .engine import WorkflowEngine
from .evidence import FixEvidenceService, CreateEvidenceRequest, EvidenceSummary

__all__ = [
    'VALID_TRANSITIONS', 'INITIAL_STATUS', 'get_available_transitions', 'is_valid_transition',
    'WorkflowTransition', 'TransitionResult', 'BulkFailure', 'BulkTransitionResult',
    'WorkflowEvent', 'WorkflowEventBus', 'WorkflowEventType',
    'WorkflowEngine', 'FixEvidenceService', 'CreateEvidenceRequest', 'EvidenceSummary'
]
