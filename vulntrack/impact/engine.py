"""Impact scope engine: how far a CVE has spread and how much it matters."""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from .models import (
    EntityType, ImpactedEntity, ImpactMetrics, CveImpactScope, ProjectImpactSummary,
    ProjectImpact, ProjectImpactOverview, OrganizationImpact
)
from .scoring import calculate_impact_score, is_critical_impact, is_high_impact
from ..core.exceptions import CveNotFoundError
from ..core.logger import WorkflowAuditLogger
from ..models import ImpactSnapshot, Vulnerability
from ..storage.base import VulnerabilityStorage
from ..workflow.events import WorkflowEvent, WorkflowEventBus, WorkflowEventType


DEFAULT_TOP_CVE_LIMIT = 10
UNKNOWN_ORGANIZATION = "Unknown"


def summarize_impacts(impacts: List[CveImpactScope]) -> ProjectImpactSummary:
    """Count critical/high impact CVEs and average their scores."""
    if not impacts:
        return ProjectImpactSummary()

    scores = [impact.total_impact_score for impact in impacts]
    return ProjectImpactSummary(
        total_cves=len(impacts),
        critical_impact=sum(1 for s in scores if is_critical_impact(s)),
        high_impact=sum(1 for s in scores if is_high_impact(s)),
        average_impact_score=sum(scores) / len(scores),
    )


class ImpactScopeEngine:
    """Read-only analytics over the occurrence data of the shared store.

    Every call recomputes from current data. Results are point-in-time
    estimates; concurrent ingestion may change them between calls.
    """

    def __init__(self, storage: VulnerabilityStorage,
                 top_cve_limit: int = DEFAULT_TOP_CVE_LIMIT,
                 event_bus: Optional[WorkflowEventBus] = None,
                 audit_logger: Optional[WorkflowAuditLogger] = None):
        """Initialize impact scope engine.

        Args:
            storage: Shared vulnerability record store
            top_cve_limit: Number of CVEs reported by organization impact
            event_bus: Optional bus notified when a snapshot is stored
            audit_logger: Audit logger, defaults to the process-wide one
        """
        self.storage = storage
        self.top_cve_limit = top_cve_limit
        self.event_bus = event_bus
        self.audit_logger = audit_logger or WorkflowAuditLogger()
        self.logger = logging.getLogger(__name__)

    async def _load_vulnerability(self, cve_id: str) -> Vulnerability:
        vulnerability = await self.storage.find_vulnerability_by_cve(cve_id)
        if vulnerability is None:
            raise CveNotFoundError(cve_id)
        return vulnerability

    async def calculate_cve_impact(self, cve_id: str) -> CveImpactScope:
        """Calculate the blast radius of a CVE across all projects and images.

        Args:
            cve_id: CVE identifier

        Returns:
            CveImpactScope with per-project and per-image entities

        Raises:
            CveNotFoundError: If no vulnerability definition has this CVE id
        """
        vulnerability = await self._load_vulnerability(cve_id)
        return await self._calculate_scope(vulnerability)

    async def _calculate_scope(self, vulnerability: Vulnerability) -> CveImpactScope:
        occurrences = await self.storage.list_occurrences(vulnerability.id)

        projects: Dict[str, ImpactedEntity] = {}
        images: Dict[str, ImpactedEntity] = {}
        oldest: Optional[datetime] = None
        newest: Optional[datetime] = None

        for occurrence in occurrences:
            seen_at = occurrence.seen_at

            project = projects.get(occurrence.project_id)
            if project is None:
                org_name = occurrence.organization_name or UNKNOWN_ORGANIZATION
                project = projects[occurrence.project_id] = ImpactedEntity(
                    type=EntityType.PROJECT,
                    id=occurrence.project_id,
                    name=f"{org_name}/{occurrence.project_name}",
                    severity=vulnerability.severity,
                    occurrences=0,
                    last_seen=seen_at,
                )
            project.occurrences += 1
            project.last_seen = max(project.last_seen, seen_at)

            image = images.get(occurrence.image_ref)
            if image is None:
                image = images[occurrence.image_ref] = ImpactedEntity(
                    type=EntityType.IMAGE,
                    id=occurrence.image_ref,
                    name=occurrence.image_ref,
                    severity=vulnerability.severity,
                    occurrences=0,
                    last_seen=seen_at,
                )
            image.occurrences += 1
            image.last_seen = max(image.last_seen, seen_at)

            if oldest is None or seen_at < oldest:
                oldest = seen_at
            if newest is None or seen_at > newest:
                newest = seen_at

        score = calculate_impact_score(
            vulnerability.severity, len(projects), len(images), len(occurrences)
        )

        now = datetime.now()
        return CveImpactScope(
            cve_id=vulnerability.cve_id,
            title=vulnerability.title or vulnerability.cve_id,
            severity=vulnerability.severity,
            impacted_projects=list(projects.values()),
            impacted_images=list(images.values()),
            impacted_services=[],
            total_impact_score=score,
            metrics=ImpactMetrics(
                project_count=len(projects),
                image_count=len(images),
                total_occurrences=len(occurrences),
                oldest_occurrence=oldest or now,
                newest_occurrence=newest or now,
            ),
        )

    async def calculate_project_impact(self, project_id: str) -> ProjectImpact:
        """Calculate the impact of every distinct CVE found in a project.

        Each CVE is scored organization-wide, not just within the project.
        """
        cve_ids = await self.storage.list_project_cve_ids(project_id)

        impacts = []
        for cve_id in cve_ids:
            impacts.append(await self.calculate_cve_impact(cve_id))

        impacts.sort(key=lambda impact: impact.total_impact_score, reverse=True)

        return ProjectImpact(
            project_id=project_id,
            cve_impacts=impacts,
            summary=summarize_impacts(impacts),
        )

    async def calculate_organization_impact(self, organization_id: str) -> OrganizationImpact:
        """Report the worst-case CVEs and per-project scores of an organization.

        A CVE seen in several projects keeps only its highest score. Project
        impact is recomputed for every project with no caching across the
        call, so cost grows with projects times CVEs.
        """
        projects = await self.storage.list_projects(organization_id)
        self.logger.debug(f"Calculating impact for {len(projects)} projects of {organization_id}")

        best_by_cve: Dict[str, CveImpactScope] = {}
        overviews: List[ProjectImpactOverview] = []

        for project in projects:
            project_impact = await self.calculate_project_impact(project.id)
            overviews.append(ProjectImpactOverview(
                project_id=project.id,
                project_name=project.name,
                summary=project_impact.summary,
            ))

            for impact in project_impact.cve_impacts:
                current = best_by_cve.get(impact.cve_id)
                if current is None or impact.total_impact_score > current.total_impact_score:
                    best_by_cve[impact.cve_id] = impact

        top_cves = sorted(best_by_cve.values(),
                          key=lambda impact: impact.total_impact_score,
                          reverse=True)[:self.top_cve_limit]
        overviews.sort(key=lambda o: o.summary.average_impact_score, reverse=True)

        return OrganizationImpact(
            organization_id=organization_id,
            top_impact_cves=top_cves,
            project_summaries=overviews,
        )

    async def store_impact_calculation(self, cve_id: str) -> ImpactSnapshot:
        """Recompute a CVE's impact and overwrite its cached snapshot.

        Raises:
            CveNotFoundError: If no vulnerability definition has this CVE id
        """
        vulnerability = await self._load_vulnerability(cve_id)
        impact = await self._calculate_scope(vulnerability)

        snapshot = ImpactSnapshot(
            vulnerability_id=vulnerability.id,
            impact_score=impact.total_impact_score,
            affected_projects=[e.id for e in impact.impacted_projects],
            affected_images=[e.id for e in impact.impacted_images],
            affected_services=[e.id for e in impact.impacted_services],
        )
        await self.storage.upsert_impact_snapshot(snapshot)

        self.audit_logger.log_impact_snapshot(
            cve_id, snapshot.impact_score,
            len(snapshot.affected_projects), len(snapshot.affected_images)
        )
        if self.event_bus is not None:
            await self.event_bus.emit(WorkflowEvent(
                event_type=WorkflowEventType.IMPACT_SNAPSHOT_STORED,
                subject_id=cve_id,
                source="impact_engine",
                data=snapshot.to_dict(),
            ))

        return snapshot

    async def get_stored_impact(self, cve_id: str) -> Optional[ImpactSnapshot]:
        """Read the cached snapshot of a CVE, or None if never stored.

        Snapshots are not refreshed automatically; check ``age()`` before
        relying on one.

        Raises:
            CveNotFoundError: If no vulnerability definition has this CVE id
        """
        vulnerability = await self._load_vulnerability(cve_id)
        return await self.storage.get_impact_snapshot(vulnerability.id)
