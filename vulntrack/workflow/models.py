"""Request and result models for the remediation workflow."""

from datetime import datetime
from typing import Dict, List, Any, Optional, Union
from dataclasses import dataclass, field

from ..models import VulnStatus


@dataclass
class WorkflowTransition:
    """A caller's request to move an instance to a new status.

    ``from_status`` is what the caller believed the current status to be.
    It is kept for the audit trail only; validation always uses the status
    read from storage at transition time.
    """
    to: Union[VulnStatus, str]
    from_status: Optional[Union[VulnStatus, str]] = None
    comment: Optional[str] = None
    evidence: Optional[Dict[str, Any]] = None


@dataclass
class TransitionResult:
    """Outcome of a committed transition."""
    success: bool
    instance_id: str
    from_status: VulnStatus
    to_status: VulnStatus
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'instance_id': self.instance_id,
            'from_status': self.from_status.value,
            'to_status': self.to_status.value,
            'timestamp': self.timestamp.isoformat(),
        }


@dataclass
class BulkFailure:
    """One item of a bulk request that could not be transitioned."""
    id: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {'id': self.id, 'reason': self.reason}


@dataclass
class BulkTransitionResult:
    """Per-item outcome of a bulk transition."""
    successful: List[str] = field(default_factory=list)
    failed: List[BulkFailure] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'successful': list(self.successful),
            'failed': [f.to_dict() for f in self.failed],
        }
