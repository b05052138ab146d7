"""Tests for the SQLite vulnerability storage."""

from datetime import datetime
from unittest.mock import patch

import pytest

from vulntrack.core.exceptions import DatabaseError
from vulntrack.models import (
    VulnStatus, Severity, ScanResult, VulnerabilityInstance, WorkflowHistoryEntry,
    ImpactSnapshot
)
from vulntrack.storage import SqliteVulnerabilityStorage
from vulntrack.storage import sqlite as sqlite_module


@pytest.mark.asyncio
class TestSqliteStorage:
    """Test cases for SqliteVulnerabilityStorage."""

    async def test_initialize_creates_schema(self, storage):
        stats = await storage.get_storage_stats()

        assert stats['healthy'] is True
        assert stats['vulnerability_instances'] == 0
        assert await storage.health_check()

    async def test_find_instance_joins_severity(self, seeded_storage):
        instance = await seeded_storage.find_instance('inst-1')

        assert instance.status == VulnStatus.OPEN
        assert instance.severity == Severity.CRITICAL
        assert instance.pkg_name == 'openssl'
        assert await seeded_storage.find_instance('inst-missing') is None

    async def test_find_instances_by_scan_result_ids(self, seeded_storage):
        instances = await seeded_storage.find_instances_by_scan_result_ids(['scan-api-1', 'scan-web-1'])

        assert {i.id for i in instances} == {'inst-1', 'inst-3', 'inst-4', 'inst-5'}
        assert await seeded_storage.find_instances_by_scan_result_ids([]) == []

    async def test_in_clause_chunking(self, seeded_storage):
        with patch.object(sqlite_module, 'IN_CLAUSE_CHUNK', 1):
            scan_ids = await seeded_storage.list_scan_result_ids('proj-api')
            instances = await seeded_storage.find_instances_by_scan_result_ids(scan_ids)
            counts = await seeded_storage.group_count_by_status(scan_ids)

        assert {i.id for i in instances} == {'inst-1', 'inst-2', 'inst-4'}
        assert counts == {VulnStatus.OPEN: 3}

    async def test_transaction_commits(self, seeded_storage):
        async with seeded_storage.transaction() as tx:
            await tx.update_instance_status('inst-1', VulnStatus.ASSIGNED, assignee_id='user-bob')
            await tx.append_history(WorkflowHistoryEntry(
                instance_id='inst-1', from_status=VulnStatus.OPEN,
                to_status=VulnStatus.ASSIGNED, changed_by_id='user-alice'))

        instance = await seeded_storage.find_instance('inst-1')
        assert instance.status == VulnStatus.ASSIGNED
        assert instance.assignee_id == 'user-bob'
        assert len(await seeded_storage.list_history('inst-1')) == 1

    async def test_transaction_rolls_back_on_error(self, seeded_storage):
        with pytest.raises(ValueError):
            async with seeded_storage.transaction() as tx:
                await tx.update_instance_status('inst-1', VulnStatus.ASSIGNED)
                raise ValueError('abort')

        assert (await seeded_storage.find_instance('inst-1')).status == VulnStatus.OPEN

    async def test_sqlite_errors_become_database_errors(self, seeded_storage):
        with pytest.raises(DatabaseError) as exc_info:
            async with seeded_storage.transaction() as tx:
                await tx.update_instance_status('inst-1', VulnStatus.ASSIGNED)
                # Duplicate primary key
                entry = WorkflowHistoryEntry(
                    instance_id='inst-1', from_status=VulnStatus.OPEN,
                    to_status=VulnStatus.ASSIGNED, changed_by_id='user-alice', id='h-1')
                await tx.append_history(entry)
                await tx.append_history(entry)

        assert exc_info.value.operation == 'transaction'
        assert (await seeded_storage.find_instance('inst-1')).status == VulnStatus.OPEN
        assert await seeded_storage.list_history('inst-1') == []

    async def test_foreign_keys_enforced(self, seeded_storage):
        with pytest.raises(DatabaseError):
            await seeded_storage.save_instance(VulnerabilityInstance(
                id='inst-orphan', scan_result_id='scan-missing', vulnerability_id='vuln-1'))

    async def test_history_newest_first_with_user(self, seeded_storage):
        for to_status in [VulnStatus.ASSIGNED, VulnStatus.IN_PROGRESS]:
            async with seeded_storage.transaction() as tx:
                await tx.append_history(WorkflowHistoryEntry(
                    instance_id='inst-1', from_status=VulnStatus.OPEN,
                    to_status=to_status, changed_by_id='user-bob'))

        history = await seeded_storage.list_history('inst-1')

        assert [h.to_status for h in history] == [VulnStatus.IN_PROGRESS, VulnStatus.ASSIGNED]
        assert history[0].changed_by.to_dict() == {
            'id': 'user-bob', 'name': 'Bob', 'email': 'bob@example.com'
        }

    async def test_history_with_unknown_user(self, seeded_storage):
        async with seeded_storage.transaction() as tx:
            await tx.append_history(WorkflowHistoryEntry(
                instance_id='inst-1', from_status=VulnStatus.OPEN,
                to_status=VulnStatus.ASSIGNED, changed_by_id='system'))

        history = await seeded_storage.list_history('inst-1')
        assert history[0].changed_by is None

    async def test_group_count_by_status(self, seeded_storage):
        async with seeded_storage.transaction() as tx:
            await tx.update_instance_status('inst-3', VulnStatus.IGNORED)

        counts = await seeded_storage.group_count_by_status(['scan-web-1'])

        assert counts == {VulnStatus.IGNORED: 1, VulnStatus.OPEN: 1}

    async def test_occurrences_and_project_queries(self, seeded_storage):
        occurrences = await seeded_storage.list_occurrences('vuln-1')

        assert [o.instance_id for o in occurrences] == ['inst-1', 'inst-2', 'inst-3']
        assert occurrences[0].organization_name == 'Acme'
        assert occurrences[0].seen_at == datetime(2024, 1, 1, 9, 0)

        assert await seeded_storage.list_project_cve_ids('proj-api') == ['CVE-2024-0001', 'CVE-2024-0002']
        assert [p.id for p in await seeded_storage.list_projects('org-acme')] == [
            'proj-api', 'proj-empty', 'proj-web'
        ]

    async def test_find_vulnerability_by_cve(self, seeded_storage):
        vulnerability = await seeded_storage.find_vulnerability_by_cve('CVE-2024-0003')

        assert vulnerability.id == 'vuln-3'
        assert vulnerability.severity == Severity.MEDIUM
        assert await seeded_storage.find_vulnerability_by_cve('CVE-0000-0000') is None

    async def test_unrecognized_severity_reads_as_unknown(self, seeded_storage):
        # Rows written by an external ingester may carry any label
        await seeded_storage._write('test', '''
            UPDATE vulnerabilities SET severity = 'NEGLIGIBLE' WHERE id = 'vuln-2'
        ''', ())

        vulnerability = await seeded_storage.find_vulnerability_by_cve('CVE-2024-0002')
        instance = await seeded_storage.find_instance('inst-4')

        assert vulnerability.severity == Severity.UNKNOWN
        assert instance.severity == Severity.UNKNOWN

    async def test_impact_snapshot_upsert(self, seeded_storage):
        await seeded_storage.upsert_impact_snapshot(ImpactSnapshot(
            vulnerability_id='vuln-1', impact_score=9.1, affected_projects=['proj-api']))
        await seeded_storage.upsert_impact_snapshot(ImpactSnapshot(
            vulnerability_id='vuln-1', impact_score=9.7,
            affected_projects=['proj-api', 'proj-web'], affected_images=['img:1']))

        snapshot = await seeded_storage.get_impact_snapshot('vuln-1')

        assert snapshot.impact_score == 9.7
        assert snapshot.affected_projects == ['proj-api', 'proj-web']
        assert snapshot.affected_images == ['img:1']
        assert snapshot.affected_services == []

    async def test_saves_are_upserts(self, seeded_storage):
        await seeded_storage.save_scan_result(ScanResult(
            'scan-api-1', 'proj-api', 'registry.example.com/api:1.0-patched', datetime(2024, 1, 1, 9, 0)))

        # Instances referencing the scan survive the update
        assert await seeded_storage.find_instance('inst-1') is not None
        occurrences = await seeded_storage.list_occurrences('vuln-2')
        assert occurrences[0].image_ref == 'registry.example.com/api:1.0-patched'

    async def test_cleanup_and_reinitialize(self, temp_dir):
        db_path = temp_dir / 'nested' / 'vulntrack.db'
        storage = SqliteVulnerabilityStorage(str(db_path))
        await storage.initialize()
        await storage.cleanup()

        assert db_path.exists()

        # Lazily reopened on first use
        stats = await storage.get_storage_stats()
        assert stats['healthy'] is True
        await storage.cleanup()
