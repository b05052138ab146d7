"""Audit logger for remediation workflow events."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from .logger_manager import AUDIT_LOGGER_NAME


class WorkflowAuditLogger:
    """Specialized logger for remediation audit events.
    
    Every record goes to the dedicated ``vulntrack.audit`` logger with its
    context in ``extra`` fields so the structured formatter can emit them.
    """
    
    def __init__(self, logger_manager=None):
        """Initialize workflow audit logger.
        
        Args:
            logger_manager: LoggerManager instance, or None to use the
                process-wide audit logger directly
        """
        if logger_manager is not None:
            self.logger = logger_manager.get_logger('audit')
        else:
            self.logger = logging.getLogger(AUDIT_LOGGER_NAME)
    
    def _log(self, level: int, message: str, event_type: str, **fields: Any) -> None:
        self.logger.log(level, message, extra={
            'event_type': event_type,
            'event_category': 'workflow_audit',
            'audit_timestamp': datetime.now().isoformat(),
            **fields
        })
    
    def log_transition(self, instance_id: str, from_status: str, to_status: str,
                       user_id: str, comment: Optional[str] = None) -> None:
        """Log a committed status transition.
        
        Args:
            instance_id: Vulnerability instance identifier
            from_status: Persisted status before the transition
            to_status: Status after the transition
            user_id: Acting user
            comment: Optional free-text comment
        """
        self._log(logging.INFO, f"Transitioned {instance_id} from {from_status} to {to_status}",
                  'status_transition', instance_id=instance_id, from_status=from_status,
                  to_status=to_status, user_id=user_id, comment=comment)
    
    def log_assignment(self, instance_id: str, assignee_id: str, assigned_by_id: str,
                       previous_status: str) -> None:
        """Log an assignment of an instance to a user."""
        self._log(logging.INFO, f"Assigned {instance_id} to {assignee_id}",
                  'instance_assigned', instance_id=instance_id, assignee_id=assignee_id,
                  assigned_by_id=assigned_by_id, previous_status=previous_status)
    
    def log_bulk_transition(self, to_status: str, user_id: str, successful: List[str],
                            failed: List[Dict[str, str]]) -> None:
        """Log the outcome of a bulk transition request."""
        level = logging.WARNING if failed else logging.INFO
        self._log(level, f"Bulk transition to {to_status}: "
                         f"{len(successful)} succeeded, {len(failed)} failed",
                  'bulk_transition', to_status=to_status, user_id=user_id,
                  successful_count=len(successful), failed=failed)
    
    def log_evidence_created(self, evidence_id: str, instance_id: str,
                             evidence_type: str, user_id: str) -> None:
        """Log creation of a fix evidence record."""
        self._log(logging.INFO, f"Created {evidence_type} evidence for vulnerability {instance_id}",
                  'evidence_created', evidence_id=evidence_id, instance_id=instance_id,
                  evidence_type=evidence_type, user_id=user_id)
    
    def log_evidence_deleted(self, evidence_id: str, user_id: str) -> None:
        """Log deletion of a fix evidence record by its author."""
        self._log(logging.INFO, f"Deleted evidence {evidence_id}",
                  'evidence_deleted', evidence_id=evidence_id, user_id=user_id)
    
    def log_access_denied(self, action: str, resource_id: str, user_id: str,
                          reason: str) -> None:
        """Log a refused action."""
        self._log(logging.WARNING, f"Access denied: {action} on {resource_id}",
                  'access_denied', action=action, resource_id=resource_id,
                  user_id=user_id, reason=reason)
    
    def log_impact_snapshot(self, cve_id: str, impact_score: float,
                            project_count: int, image_count: int) -> None:
        """Log a refreshed impact snapshot."""
        self._log(logging.INFO, f"Stored impact snapshot for {cve_id}",
                  'impact_snapshot', cve_id=cve_id, impact_score=impact_score,
                  project_count=project_count, image_count=image_count)
