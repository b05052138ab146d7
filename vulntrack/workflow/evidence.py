"""Fix evidence log attached to vulnerability instances."""

import logging
from collections import Counter
from typing import Dict, List, Any, Optional, Union
from dataclasses import dataclass, field

from .events import WorkflowEvent, WorkflowEventBus, WorkflowEventType
from ..core.exceptions import (
    InstanceNotFoundError, EvidenceNotFoundError, UnauthorizedActionError
)
from ..core.logger import WorkflowAuditLogger
from ..models import EvidenceType, EvidenceAttachment, FixEvidenceRecord
from ..storage.base import VulnerabilityStorage


RECENT_EVIDENCE_LIMIT = 10


@dataclass
class CreateEvidenceRequest:
    """Payload for recording a new piece of fix evidence."""
    instance_id: str
    evidence_type: Union[EvidenceType, str]
    url: Optional[str] = None
    description: Optional[str] = None
    previous_value: Optional[str] = None
    new_value: Optional[str] = None
    attachments: List[EvidenceAttachment] = field(default_factory=list)


@dataclass
class EvidenceSummary:
    """Evidence counts for a project plus its most recent records."""
    total: int
    by_type: Dict[str, int]
    recent_evidence: List[FixEvidenceRecord]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total': self.total,
            'by_type': dict(self.by_type),
            'recent_evidence': [r.to_dict() for r in self.recent_evidence],
        }


class FixEvidenceService:
    """Append, query and owner-only delete of fix evidence."""

    def __init__(self, storage: VulnerabilityStorage,
                 event_bus: Optional[WorkflowEventBus] = None,
                 audit_logger: Optional[WorkflowAuditLogger] = None):
        self.storage = storage
        self.event_bus = event_bus
        self.audit_logger = audit_logger or WorkflowAuditLogger()
        self.logger = logging.getLogger(__name__)

    async def create_evidence(self, user_id: str,
                              request: CreateEvidenceRequest) -> FixEvidenceRecord:
        """Record evidence for an instance.

        Args:
            user_id: Author of the evidence
            request: Evidence payload

        Returns:
            Stored record joined with its author

        Raises:
            InstanceNotFoundError: If the instance does not exist
            ValueError: If the evidence type is not recognized
        """
        instance = await self.storage.find_instance(request.instance_id)
        if instance is None:
            raise InstanceNotFoundError(request.instance_id)

        record = await self.storage.create_evidence(FixEvidenceRecord(
            instance_id=request.instance_id,
            evidence_type=EvidenceType(request.evidence_type),
            created_by_id=user_id,
            url=request.url,
            description=request.description,
            previous_value=request.previous_value,
            new_value=request.new_value,
            attachments=list(request.attachments),
        ))

        self.audit_logger.log_evidence_created(
            record.id, record.instance_id, record.evidence_type.value, user_id
        )
        await self._emit(WorkflowEvent(
            event_type=WorkflowEventType.EVIDENCE_CREATED,
            subject_id=record.id,
            user_id=user_id,
            data={'instance_id': record.instance_id,
                  'evidence_type': record.evidence_type.value},
        ))

        return record

    async def get_evidence_for_vulnerability(self, instance_id: str) -> List[FixEvidenceRecord]:
        """List an instance's evidence, newest first."""
        return await self.storage.list_evidence([instance_id])

    async def add_pr_link(self, user_id: str, instance_id: str, pr_url: str,
                          description: Optional[str] = None) -> FixEvidenceRecord:
        return await self.create_evidence(user_id, CreateEvidenceRequest(
            instance_id=instance_id,
            evidence_type=EvidenceType.PR_LINK,
            url=pr_url,
            description=description or f"Fix PR: {pr_url}",
        ))

    async def add_package_upgrade(self, user_id: str, instance_id: str,
                                  previous_version: str, new_version: str,
                                  description: Optional[str] = None) -> FixEvidenceRecord:
        return await self.create_evidence(user_id, CreateEvidenceRequest(
            instance_id=instance_id,
            evidence_type=EvidenceType.PACKAGE_UPGRADE,
            previous_value=previous_version,
            new_value=new_version,
            description=description or f"Upgraded from {previous_version} to {new_version}",
        ))

    async def add_image_tag_change(self, user_id: str, instance_id: str,
                                   previous_tag: str, new_tag: str,
                                   description: Optional[str] = None) -> FixEvidenceRecord:
        return await self.create_evidence(user_id, CreateEvidenceRequest(
            instance_id=instance_id,
            evidence_type=EvidenceType.IMAGE_TAG_CHANGE,
            previous_value=previous_tag,
            new_value=new_tag,
            description=description or f"Changed image tag from {previous_tag} to {new_tag}",
        ))

    async def delete_evidence(self, evidence_id: str, user_id: str) -> None:
        """Delete evidence authored by ``user_id``.

        Raises:
            EvidenceNotFoundError: If the record does not exist
            UnauthorizedActionError: If ``user_id`` is not the author
        """
        record = await self.storage.find_evidence(evidence_id)
        if record is None:
            raise EvidenceNotFoundError(evidence_id)

        if record.created_by_id != user_id:
            self.audit_logger.log_access_denied(
                'delete_evidence', evidence_id, user_id, 'not the evidence author'
            )
            raise UnauthorizedActionError(
                "Can only delete your own evidence",
                action='delete_evidence',
                user=user_id,
            )

        await self.storage.delete_evidence(evidence_id)

        self.audit_logger.log_evidence_deleted(evidence_id, user_id)
        await self._emit(WorkflowEvent(
            event_type=WorkflowEventType.EVIDENCE_DELETED,
            subject_id=evidence_id,
            user_id=user_id,
            data={'instance_id': record.instance_id},
        ))

    async def get_evidence_summary(self, project_id: str) -> EvidenceSummary:
        """Summarize evidence across every instance of a project."""
        scan_result_ids = await self.storage.list_scan_result_ids(project_id)
        instances = await self.storage.find_instances_by_scan_result_ids(scan_result_ids)
        evidence = await self.storage.list_evidence([i.id for i in instances]) if instances else []

        by_type = Counter(record.evidence_type.value for record in evidence)

        return EvidenceSummary(
            total=len(evidence),
            by_type=dict(by_type),
            recent_evidence=evidence[:RECENT_EVIDENCE_LIMIT],
        )

    async def _emit(self, event: WorkflowEvent) -> None:
        if self.event_bus is not None:
            await self.event_bus.emit(event)
