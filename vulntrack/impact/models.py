"""Result models for impact scope calculations."""

from datetime import datetime
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field

from ..models import Severity


class EntityType:
    """Kinds of impacted entity."""
    PROJECT = "project"
    IMAGE = "image"
    SERVICE = "service"


@dataclass
class ImpactedEntity:
    """A project, image or service affected by a CVE."""
    type: str
    id: str
    name: str
    severity: Severity
    occurrences: int
    last_seen: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type,
            'id': self.id,
            'name': self.name,
            'severity': self.severity.value,
            'occurrences': self.occurrences,
            'last_seen': self.last_seen.isoformat(),
        }


@dataclass
class ImpactMetrics:
    """Aggregate counts behind an impact score."""
    project_count: int
    image_count: int
    total_occurrences: int
    oldest_occurrence: datetime
    newest_occurrence: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            'project_count': self.project_count,
            'image_count': self.image_count,
            'total_occurrences': self.total_occurrences,
            'oldest_occurrence': self.oldest_occurrence.isoformat(),
            'newest_occurrence': self.newest_occurrence.isoformat(),
        }


@dataclass
class CveImpactScope:
    """Organization-wide blast radius of one CVE."""
    cve_id: str
    title: str
    severity: Severity
    total_impact_score: float
    metrics: ImpactMetrics
    impacted_projects: List[ImpactedEntity] = field(default_factory=list)
    impacted_images: List[ImpactedEntity] = field(default_factory=list)
    # No service mapping exists yet; always empty.
    impacted_services: List[ImpactedEntity] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'cve_id': self.cve_id,
            'title': self.title,
            'severity': self.severity.value,
            'impacted_projects': [e.to_dict() for e in self.impacted_projects],
            'impacted_images': [e.to_dict() for e in self.impacted_images],
            'impacted_services': [e.to_dict() for e in self.impacted_services],
            'total_impact_score': self.total_impact_score,
            'metrics': self.metrics.to_dict(),
        }


@dataclass
class ProjectImpactSummary:
    """Score distribution for a set of CVEs."""
    total_cves: int = 0
    critical_impact: int = 0
    high_impact: int = 0
    average_impact_score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_cves': self.total_cves,
            'critical_impact': self.critical_impact,
            'high_impact': self.high_impact,
            'average_impact_score': self.average_impact_score,
        }


@dataclass
class ProjectImpact:
    """Impact of every CVE found in a project, highest score first."""
    project_id: str
    cve_impacts: List[CveImpactScope]
    summary: ProjectImpactSummary

    def to_dict(self) -> Dict[str, Any]:
        return {
            'project_id': self.project_id,
            'cve_impacts': [c.to_dict() for c in self.cve_impacts],
            'summary': self.summary.to_dict(),
        }


@dataclass
class ProjectImpactOverview:
    """One project's line in an organization report."""
    project_id: str
    project_name: str
    summary: ProjectImpactSummary

    def to_dict(self) -> Dict[str, Any]:
        return {
            'project_id': self.project_id,
            'project_name': self.project_name,
            **self.summary.to_dict(),
        }


@dataclass
class OrganizationImpact:
    """Worst-case CVE impact across an organization's projects."""
    organization_id: str
    top_impact_cves: List[CveImpactScope]
    project_summaries: List[ProjectImpactOverview]
    calculated_at: Optional[datetime] = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'organization_id': self.organization_id,
            'top_impact_cves': [c.to_dict() for c in self.top_impact_cves],
            'project_summaries': [p.to_dict() for p in self.project_summaries],
            'calculated_at': self.calculated_at.isoformat() if self.calculated_at else None,
        }
