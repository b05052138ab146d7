"""Core data models shared by the workflow and impact engines."""

import uuid
from datetime import datetime, timedelta
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field
from enum import Enum


class VulnStatus(Enum):
    """Remediation status of a vulnerability instance."""
    OPEN = "OPEN"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    FIX_SUBMITTED = "FIX_SUBMITTED"
    VERIFYING = "VERIFYING"
    FIXED = "FIXED"
    CLOSED = "CLOSED"
    IGNORED = "IGNORED"
    FALSE_POSITIVE = "FALSE_POSITIVE"

    @classmethod
    def parse(cls, value: Any) -> Optional['VulnStatus']:
        """Return the matching status, or None for anything unrecognized."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


class Severity(Enum):
    """Vulnerability severity levels."""
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: Any) -> 'Severity':
        """Return the matching severity; unrecognized values are UNKNOWN."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.UNKNOWN


class EvidenceType(Enum):
    """Kinds of proof that a fix was applied."""
    PR_LINK = "PR_LINK"
    COMMIT = "COMMIT"
    IMAGE_TAG_CHANGE = "IMAGE_TAG_CHANGE"
    PACKAGE_UPGRADE = "PACKAGE_UPGRADE"
    PATCH_APPLIED = "PATCH_APPLIED"
    CONFIG_CHANGE = "CONFIG_CHANGE"
    WORKAROUND = "WORKAROUND"
    DOCUMENTATION = "DOCUMENTATION"
    OTHER = "OTHER"


def new_id() -> str:
    return str(uuid.uuid4())


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class Organization:
    """Organization owning projects."""
    id: str
    name: str


@dataclass
class Project:
    """Project whose scan results hold vulnerability instances."""
    id: str
    name: str
    organization_id: str


@dataclass
class UserIdentity:
    """Public projection of a user: id, name and email only."""
    id: str
    name: str
    email: str

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name, 'email': self.email}


@dataclass
class ScanResult:
    """One ingested scan of a container image."""
    id: str
    project_id: str
    image_ref: str
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class Vulnerability:
    """Vulnerability definition identified by its CVE."""
    id: str
    cve_id: str
    severity: Severity = Severity.UNKNOWN
    title: Optional[str] = None


@dataclass
class VulnerabilityInstance:
    """One occurrence of a vulnerability found in one scan result."""
    id: str
    scan_result_id: str
    vulnerability_id: str
    pkg_name: str = ""
    pkg_version: str = ""
    status: VulnStatus = VulnStatus.OPEN
    assignee_id: Optional[str] = None
    severity: Severity = Severity.UNKNOWN
    discovered_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'scan_result_id': self.scan_result_id,
            'vulnerability_id': self.vulnerability_id,
            'pkg_name': self.pkg_name,
            'pkg_version': self.pkg_version,
            'status': self.status.value,
            'assignee_id': self.assignee_id,
            'severity': self.severity.value,
            'discovered_at': _iso(self.discovered_at),
        }


@dataclass
class WorkflowHistoryEntry:
    """Immutable audit record of one status transition."""
    instance_id: str
    from_status: VulnStatus
    to_status: VulnStatus
    changed_by_id: str
    comment: Optional[str] = None
    evidence: Optional[Dict[str, Any]] = None
    reported_from_status: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=datetime.now)
    changed_by: Optional[UserIdentity] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'instance_id': self.instance_id,
            'from_status': self.from_status.value,
            'to_status': self.to_status.value,
            'changed_by_id': self.changed_by_id,
            'changed_by': self.changed_by.to_dict() if self.changed_by else None,
            'comment': self.comment,
            'evidence': self.evidence,
            'reported_from_status': self.reported_from_status,
            'created_at': _iso(self.created_at),
        }


@dataclass
class EvidenceAttachment:
    """File attached to a fix evidence record."""
    file_name: str
    file_type: str
    file_size: int
    storage_key: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'file_name': self.file_name,
            'file_type': self.file_type,
            'file_size': self.file_size,
            'storage_key': self.storage_key,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EvidenceAttachment':
        return cls(
            file_name=data['file_name'],
            file_type=data['file_type'],
            file_size=int(data['file_size']),
            storage_key=data.get('storage_key'),
        )


@dataclass
class FixEvidenceRecord:
    """Supporting proof that a fix was applied to an instance."""
    instance_id: str
    evidence_type: EvidenceType
    created_by_id: str
    url: Optional[str] = None
    description: Optional[str] = None
    previous_value: Optional[str] = None
    new_value: Optional[str] = None
    attachments: List[EvidenceAttachment] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=datetime.now)
    created_by: Optional[UserIdentity] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'instance_id': self.instance_id,
            'evidence_type': self.evidence_type.value,
            'url': self.url,
            'description': self.description,
            'previous_value': self.previous_value,
            'new_value': self.new_value,
            'attachments': [a.to_dict() for a in self.attachments],
            'created_by_id': self.created_by_id,
            'created_by': self.created_by.to_dict() if self.created_by else None,
            'created_at': _iso(self.created_at),
        }


@dataclass
class Occurrence:
    """An instance joined with its scan result, project and organization."""
    instance_id: str
    scan_result_id: str
    project_id: str
    project_name: str
    organization_id: Optional[str]
    organization_name: Optional[str]
    image_ref: str
    seen_at: datetime


@dataclass
class ImpactSnapshot:
    """Cached impact calculation for one vulnerability definition.

    Never authoritative: callers check ``calculated_at`` before trusting it.
    """
    vulnerability_id: str
    impact_score: float
    affected_projects: List[str] = field(default_factory=list)
    affected_images: List[str] = field(default_factory=list)
    affected_services: List[str] = field(default_factory=list)
    calculated_at: datetime = field(default_factory=datetime.now)

    def age(self, now: Optional[datetime] = None) -> timedelta:
        """Time elapsed since the snapshot was calculated."""
        return (now or datetime.now()) - self.calculated_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            'vulnerability_id': self.vulnerability_id,
            'impact_score': self.impact_score,
            'affected_projects': list(self.affected_projects),
            'affected_images': list(self.affected_images),
            'affected_services': list(self.affected_services),
            'calculated_at': _iso(self.calculated_at),
        }
