"""Base interfaces for vulnerability record storage."""

import logging
from abc import ABC, abstractmethod
from typing import AsyncContextManager, Dict, List, Any, Optional

from ..models import (
    VulnStatus, Organization, Project, UserIdentity, ScanResult, Vulnerability,
    VulnerabilityInstance, WorkflowHistoryEntry, FixEvidenceRecord, Occurrence,
    ImpactSnapshot
)
from ..core.exceptions import DatabaseError


logger = logging.getLogger(__name__)


class StorageTransaction(ABC):
    """Unit of work yielded by ``VulnerabilityStorage.transaction()``.

    Everything done through a transaction is committed together when the
    context exits normally and rolled back if it exits with an exception.
    """

    @abstractmethod
    async def find_instance(self, instance_id: str) -> Optional[VulnerabilityInstance]:
        """Read an instance inside the transaction."""
        pass

    @abstractmethod
    async def update_instance_status(self, instance_id: str, status: VulnStatus,
                                     assignee_id: Optional[str] = None) -> None:
        """Set the status (and assignee, when given) of an instance."""
        pass

    @abstractmethod
    async def append_history(self, entry: WorkflowHistoryEntry) -> None:
        """Append a workflow history entry."""
        pass


class VulnerabilityStorage(ABC):
    """Abstract base class for the shared vulnerability record store."""

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize storage backend."""
        pass

    @abstractmethod
    async def cleanup(self) -> None:
        """Cleanup storage resources."""
        pass

    @abstractmethod
    def transaction(self) -> AsyncContextManager[StorageTransaction]:
        """Open an atomic unit of work.

        Returns:
            Async context manager yielding a StorageTransaction

        Raises:
            DatabaseError: If the transaction cannot be committed
        """
        pass

    # Instance store

    @abstractmethod
    async def find_instance(self, instance_id: str) -> Optional[VulnerabilityInstance]:
        """Load a vulnerability instance.

        Args:
            instance_id: Instance identifier

        Returns:
            VulnerabilityInstance if found, None otherwise
        """
        pass

    @abstractmethod
    async def find_instances_by_scan_result_ids(self, scan_result_ids: List[str]
                                                ) -> List[VulnerabilityInstance]:
        """Load every instance belonging to the given scan results."""
        pass

    @abstractmethod
    async def group_count_by_status(self, scan_result_ids: List[str]) -> Dict[VulnStatus, int]:
        """Count instances per status across the given scan results.

        Statuses without instances are absent from the mapping.
        """
        pass

    @abstractmethod
    async def list_scan_result_ids(self, project_id: str) -> List[str]:
        """List the scan result ids of a project."""
        pass

    # History store

    @abstractmethod
    async def list_history(self, instance_id: str) -> List[WorkflowHistoryEntry]:
        """List history entries newest first, joined with the acting user."""
        pass

    # Vulnerability / occurrence store

    @abstractmethod
    async def find_vulnerability_by_cve(self, cve_id: str) -> Optional[Vulnerability]:
        """Load a vulnerability definition by CVE identifier."""
        pass

    @abstractmethod
    async def list_occurrences(self, vulnerability_id: str) -> List[Occurrence]:
        """List every instance of a vulnerability with scan/project/org context."""
        pass

    @abstractmethod
    async def list_project_cve_ids(self, project_id: str) -> List[str]:
        """List the distinct CVE identifiers found in a project's scan results."""
        pass

    @abstractmethod
    async def list_projects(self, organization_id: str) -> List[Project]:
        """List the projects of an organization."""
        pass

    @abstractmethod
    async def upsert_impact_snapshot(self, snapshot: ImpactSnapshot) -> None:
        """Insert or replace the cached impact row of a vulnerability."""
        pass

    @abstractmethod
    async def get_impact_snapshot(self, vulnerability_id: str) -> Optional[ImpactSnapshot]:
        """Load the cached impact row of a vulnerability."""
        pass

    # Evidence store

    @abstractmethod
    async def create_evidence(self, record: FixEvidenceRecord) -> FixEvidenceRecord:
        """Persist a fix evidence record and return it joined with its author."""
        pass

    @abstractmethod
    async def find_evidence(self, evidence_id: str) -> Optional[FixEvidenceRecord]:
        """Load a fix evidence record."""
        pass

    @abstractmethod
    async def list_evidence(self, instance_ids: List[str]) -> List[FixEvidenceRecord]:
        """List evidence for the given instances, newest first."""
        pass

    @abstractmethod
    async def delete_evidence(self, evidence_id: str) -> bool:
        """Delete a fix evidence record.

        Returns:
            True if deleted, False if not found
        """
        pass

    # Ingestion (owned by the surrounding system)

    @abstractmethod
    async def save_organization(self, organization: Organization) -> None:
        pass

    @abstractmethod
    async def save_project(self, project: Project) -> None:
        pass

    @abstractmethod
    async def save_user(self, user: UserIdentity) -> None:
        pass

    @abstractmethod
    async def save_scan_result(self, scan_result: ScanResult) -> None:
        pass

    @abstractmethod
    async def save_vulnerability(self, vulnerability: Vulnerability) -> None:
        pass

    @abstractmethod
    async def save_instance(self, instance: VulnerabilityInstance) -> None:
        pass

    @abstractmethod
    async def get_storage_stats(self) -> Dict[str, Any]:
        """Get storage statistics.

        Returns:
            Dictionary containing record counts and a ``healthy`` flag
        """
        pass

    async def health_check(self) -> bool:
        """Check storage health.

        Returns:
            True if storage is healthy, False otherwise
        """
        try:
            stats = await self.get_storage_stats()
        except DatabaseError as e:
            logger.warning(f"Storage health check failed: {e}")
            return False
        return stats.get('healthy', False)
