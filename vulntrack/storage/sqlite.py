"""SQLite implementation of vulnerability record storage."""

import asyncio
import json
import logging
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, Dict, List, Any, Iterable, Optional

import aiosqlite

from .base import VulnerabilityStorage, StorageTransaction
from ..core.exceptions import DatabaseError
from ..models import (
    VulnStatus, Severity, EvidenceType, Organization, Project, UserIdentity,
    ScanResult, Vulnerability, VulnerabilityInstance, WorkflowHistoryEntry,
    EvidenceAttachment, FixEvidenceRecord, Occurrence, ImpactSnapshot
)


logger = logging.getLogger(__name__)

# Stay well below SQLITE_MAX_VARIABLE_NUMBER on older builds
IN_CLAUSE_CHUNK = 500

SCHEMA = [
    '''
    CREATE TABLE IF NOT EXISTS organizations (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS projects (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        organization_id TEXT NOT NULL REFERENCES organizations(id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        email TEXT NOT NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS scan_results (
        id TEXT PRIMARY KEY,
        project_id TEXT NOT NULL REFERENCES projects(id),
        image_ref TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS vulnerabilities (
        id TEXT PRIMARY KEY,
        cve_id TEXT NOT NULL UNIQUE,
        title TEXT,
        severity TEXT NOT NULL DEFAULT 'UNKNOWN'
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS vulnerability_instances (
        id TEXT PRIMARY KEY,
        scan_result_id TEXT NOT NULL REFERENCES scan_results(id),
        vulnerability_id TEXT NOT NULL REFERENCES vulnerabilities(id),
        pkg_name TEXT NOT NULL DEFAULT '',
        pkg_version TEXT NOT NULL DEFAULT '',
        status TEXT NOT NULL DEFAULT 'OPEN',
        assignee_id TEXT,
        discovered_at TEXT NOT NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS workflow_history (
        id TEXT PRIMARY KEY,
        instance_id TEXT NOT NULL REFERENCES vulnerability_instances(id),
        from_status TEXT NOT NULL,
        to_status TEXT NOT NULL,
        changed_by_id TEXT NOT NULL,
        comment TEXT,
        evidence TEXT,
        reported_from_status TEXT,
        created_at TEXT NOT NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS fix_evidence (
        id TEXT PRIMARY KEY,
        instance_id TEXT NOT NULL REFERENCES vulnerability_instances(id),
        evidence_type TEXT NOT NULL,
        url TEXT,
        description TEXT,
        previous_value TEXT,
        new_value TEXT,
        attachments TEXT NOT NULL DEFAULT '[]',
        created_by_id TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS vulnerability_impacts (
        vulnerability_id TEXT PRIMARY KEY REFERENCES vulnerabilities(id),
        affected_projects TEXT NOT NULL DEFAULT '[]',
        affected_images TEXT NOT NULL DEFAULT '[]',
        affected_services TEXT NOT NULL DEFAULT '[]',
        impact_score REAL NOT NULL,
        calculated_at TEXT NOT NULL
    )
    ''',
    'CREATE INDEX IF NOT EXISTS idx_projects_org ON projects(organization_id)',
    'CREATE INDEX IF NOT EXISTS idx_scan_results_project ON scan_results(project_id)',
    'CREATE INDEX IF NOT EXISTS idx_instances_scan ON vulnerability_instances(scan_result_id)',
    'CREATE INDEX IF NOT EXISTS idx_instances_vuln ON vulnerability_instances(vulnerability_id)',
    'CREATE INDEX IF NOT EXISTS idx_history_instance ON workflow_history(instance_id, created_at)',
    'CREATE INDEX IF NOT EXISTS idx_evidence_instance ON fix_evidence(instance_id, created_at)',
]

INSTANCE_COLUMNS = '''
    i.id, i.scan_result_id, i.vulnerability_id, i.pkg_name, i.pkg_version,
    i.status, i.assignee_id, COALESCE(v.severity, 'UNKNOWN') AS severity,
    i.discovered_at
'''

INSTANCE_BY_ID_SQL = f'''
    SELECT {INSTANCE_COLUMNS}
    FROM vulnerability_instances i
    LEFT JOIN vulnerabilities v ON v.id = i.vulnerability_id
    WHERE i.id = ?
'''

EVIDENCE_COLUMNS = '''
    e.id, e.instance_id, e.evidence_type, e.url, e.description,
    e.previous_value, e.new_value, e.attachments, e.created_by_id,
    e.created_at, u.id AS user_id, u.name AS user_name, u.email AS user_email
'''


def _ts(value: datetime) -> str:
    return value.isoformat(timespec='microseconds')


def _parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _chunks(values: List[str], size: Optional[int] = None) -> Iterable[List[str]]:
    size = size or IN_CLAUSE_CHUNK
    for start in range(0, len(values), size):
        yield values[start:start + size]


def _placeholders(count: int) -> str:
    return ', '.join('?' for _ in range(count))


def _user_from_row(row: aiosqlite.Row) -> Optional[UserIdentity]:
    if row['user_id'] is None:
        return None
    return UserIdentity(id=row['user_id'], name=row['user_name'], email=row['user_email'])


def _instance_from_row(row: aiosqlite.Row) -> VulnerabilityInstance:
    return VulnerabilityInstance(
        id=row['id'],
        scan_result_id=row['scan_result_id'],
        vulnerability_id=row['vulnerability_id'],
        pkg_name=row['pkg_name'],
        pkg_version=row['pkg_version'],
        status=VulnStatus(row['status']),
        assignee_id=row['assignee_id'],
        severity=Severity.parse(row['severity']),
        discovered_at=_parse_ts(row['discovered_at']),
    )


def _evidence_from_row(row: aiosqlite.Row) -> FixEvidenceRecord:
    return FixEvidenceRecord(
        id=row['id'],
        instance_id=row['instance_id'],
        evidence_type=EvidenceType(row['evidence_type']),
        url=row['url'],
        description=row['description'],
        previous_value=row['previous_value'],
        new_value=row['new_value'],
        attachments=[EvidenceAttachment.from_dict(a) for a in json.loads(row['attachments'])],
        created_by_id=row['created_by_id'],
        created_at=_parse_ts(row['created_at']),
        created_by=_user_from_row(row),
    )


class SqliteTransaction(StorageTransaction):
    """Transaction bound to the storage's single connection."""

    def __init__(self, storage: 'SqliteVulnerabilityStorage'):
        self._storage = storage

    async def find_instance(self, instance_id: str) -> Optional[VulnerabilityInstance]:
        rows = await self._storage._query('find_instance', INSTANCE_BY_ID_SQL, (instance_id,))
        return _instance_from_row(rows[0]) if rows else None

    async def update_instance_status(self, instance_id: str, status: VulnStatus,
                                     assignee_id: Optional[str] = None) -> None:
        await self._storage._write_instance_status(instance_id, status, assignee_id)

    async def append_history(self, entry: WorkflowHistoryEntry) -> None:
        await self._storage._insert_history(entry)


class SqliteVulnerabilityStorage(VulnerabilityStorage):
    """SQLite implementation of vulnerability record storage.

    One aiosqlite connection is shared by all callers, so every statement
    outside a transaction takes ``_lock``. A transaction holds the lock from
    BEGIN until commit or rollback; other readers wait rather than see its
    uncommitted rows.
    """

    def __init__(self, db_path: str = "data/vulntrack.db"):
        """Initialize SQLite storage.

        Args:
            db_path: Path to SQLite database file, or ':memory:'
        """
        self.db_path = str(db_path)
        if self.db_path != ':memory:':
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._connection: Optional[aiosqlite.Connection] = None
        self._initialized = False
        self._init_lock = asyncio.Lock()
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Initialize SQLite database and create tables."""
        if self._initialized:
            return

        async with self._init_lock:
            if self._initialized:
                return

            try:
                self._connection = await aiosqlite.connect(self.db_path)
                self._connection.row_factory = aiosqlite.Row
                await self._connection.execute('PRAGMA foreign_keys = ON')
                for statement in SCHEMA:
                    await self._connection.execute(statement)
                await self._connection.commit()
                self._initialized = True
                logger.info(f"SQLite vulnerability storage initialized at {self.db_path}")
            except sqlite3.Error as e:
                raise DatabaseError('initialize', str(e)) from e

    async def cleanup(self) -> None:
        """Cleanup SQLite connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None
            self._initialized = False
            logger.info("SQLite vulnerability storage cleaned up")

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.initialize()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StorageTransaction]:
        """Open an atomic unit of work on the shared connection.

        Anything that leaves the block without reaching the commit, a
        cancelled task included, rolls back before the lock is released.
        """
        await self._ensure_initialized()

        async with self._lock:
            try:
                await self._connection.execute('BEGIN')
                yield SqliteTransaction(self)
                await self._connection.commit()
            except sqlite3.Error as e:
                await self._connection.rollback()
                logger.debug(f"Transaction rolled back: {e}")
                raise DatabaseError('transaction', str(e)) from e
            except BaseException as e:
                await self._connection.rollback()
                logger.debug(f"Transaction rolled back: {e!r}")
                raise

    async def _write(self, operation: str, sql: str, params: tuple) -> int:
        """Run a single write statement in its own committed unit."""
        await self._ensure_initialized()

        async with self._lock:
            try:
                cursor = await self._connection.execute(sql, params)
                await self._connection.commit()
                return cursor.rowcount
            except sqlite3.Error as e:
                await self._connection.rollback()
                raise DatabaseError(operation, str(e)) from e
            except BaseException:
                await self._connection.rollback()
                raise

    async def _query(self, operation: str, sql: str, params: tuple = ()) -> List[aiosqlite.Row]:
        """Run a SELECT; the caller must already hold ``_lock``."""
        try:
            async with self._connection.execute(sql, params) as cursor:
                return list(await cursor.fetchall())
        except sqlite3.Error as e:
            raise DatabaseError(operation, str(e)) from e

    async def _fetchall(self, operation: str, sql: str, params: tuple = ()) -> List[aiosqlite.Row]:
        await self._ensure_initialized()
        async with self._lock:
            return await self._query(operation, sql, params)

    async def _fetchone(self, operation: str, sql: str, params: tuple = ()) -> Optional[aiosqlite.Row]:
        rows = await self._fetchall(operation, sql, params)
        return rows[0] if rows else None

    # Statements run inside transactions

    async def _write_instance_status(self, instance_id: str, status: VulnStatus,
                                     assignee_id: Optional[str]) -> None:
        if assignee_id is None:
            await self._connection.execute(
                'UPDATE vulnerability_instances SET status = ? WHERE id = ?',
                (status.value, instance_id))
        else:
            await self._connection.execute(
                'UPDATE vulnerability_instances SET status = ?, assignee_id = ? WHERE id = ?',
                (status.value, assignee_id, instance_id))

    async def _insert_history(self, entry: WorkflowHistoryEntry) -> None:
        await self._connection.execute('''
            INSERT INTO workflow_history (
                id, instance_id, from_status, to_status, changed_by_id,
                comment, evidence, reported_from_status, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        ''', (
            entry.id,
            entry.instance_id,
            entry.from_status.value,
            entry.to_status.value,
            entry.changed_by_id,
            entry.comment,
            json.dumps(entry.evidence) if entry.evidence is not None else None,
            entry.reported_from_status,
            _ts(entry.created_at),
        ))

    # Instance store

    async def find_instance(self, instance_id: str) -> Optional[VulnerabilityInstance]:
        row = await self._fetchone('find_instance', INSTANCE_BY_ID_SQL, (instance_id,))
        return _instance_from_row(row) if row else None

    async def find_instances_by_scan_result_ids(self, scan_result_ids: List[str]
                                                ) -> List[VulnerabilityInstance]:
        instances: List[VulnerabilityInstance] = []
        for chunk in _chunks(scan_result_ids):
            rows = await self._fetchall('find_instances_by_scan_result_ids', f'''
                SELECT {INSTANCE_COLUMNS}
                FROM vulnerability_instances i
                LEFT JOIN vulnerabilities v ON v.id = i.vulnerability_id
                WHERE i.scan_result_id IN ({_placeholders(len(chunk))})
                ORDER BY i.discovered_at
            ''', tuple(chunk))
            instances.extend(_instance_from_row(row) for row in rows)
        return instances

    async def group_count_by_status(self, scan_result_ids: List[str]) -> Dict[VulnStatus, int]:
        counts: Dict[VulnStatus, int] = {}
        for chunk in _chunks(scan_result_ids):
            rows = await self._fetchall('group_count_by_status', f'''
                SELECT status, COUNT(*) AS total
                FROM vulnerability_instances
                WHERE scan_result_id IN ({_placeholders(len(chunk))})
                GROUP BY status
            ''', tuple(chunk))
            for row in rows:
                status = VulnStatus(row['status'])
                counts[status] = counts.get(status, 0) + row['total']
        return counts

    async def list_scan_result_ids(self, project_id: str) -> List[str]:
        rows = await self._fetchall('list_scan_result_ids', '''
            SELECT id FROM scan_results WHERE project_id = ? ORDER BY created_at
        ''', (project_id,))
        return [row['id'] for row in rows]

    # History store

    async def list_history(self, instance_id: str) -> List[WorkflowHistoryEntry]:
        rows = await self._fetchall('list_history', '''
            SELECT h.id, h.instance_id, h.from_status, h.to_status, h.changed_by_id,
                   h.comment, h.evidence, h.reported_from_status, h.created_at,
                   u.id AS user_id, u.name AS user_name, u.email AS user_email
            FROM workflow_history h
            LEFT JOIN users u ON u.id = h.changed_by_id
            WHERE h.instance_id = ?
            ORDER BY h.created_at DESC, h.rowid DESC
        ''', (instance_id,))

        return [
            WorkflowHistoryEntry(
                id=row['id'],
                instance_id=row['instance_id'],
                from_status=VulnStatus(row['from_status']),
                to_status=VulnStatus(row['to_status']),
                changed_by_id=row['changed_by_id'],
                comment=row['comment'],
                evidence=json.loads(row['evidence']) if row['evidence'] else None,
                reported_from_status=row['reported_from_status'],
                created_at=_parse_ts(row['created_at']),
                changed_by=_user_from_row(row),
            )
            for row in rows
        ]

    # Vulnerability / occurrence store

    async def find_vulnerability_by_cve(self, cve_id: str) -> Optional[Vulnerability]:
        row = await self._fetchone('find_vulnerability_by_cve', '''
            SELECT id, cve_id, title, severity FROM vulnerabilities WHERE cve_id = ?
        ''', (cve_id,))
        if not row:
            return None
        return Vulnerability(
            id=row['id'],
            cve_id=row['cve_id'],
            title=row['title'],
            severity=Severity.parse(row['severity']),
        )

    async def list_occurrences(self, vulnerability_id: str) -> List[Occurrence]:
        rows = await self._fetchall('list_occurrences', '''
            SELECT i.id AS instance_id, i.scan_result_id, s.project_id,
                   p.name AS project_name, p.organization_id,
                   o.name AS organization_name, s.image_ref, s.created_at
            FROM vulnerability_instances i
            JOIN scan_results s ON s.id = i.scan_result_id
            JOIN projects p ON p.id = s.project_id
            LEFT JOIN organizations o ON o.id = p.organization_id
            WHERE i.vulnerability_id = ?
            ORDER BY s.created_at
        ''', (vulnerability_id,))

        return [
            Occurrence(
                instance_id=row['instance_id'],
                scan_result_id=row['scan_result_id'],
                project_id=row['project_id'],
                project_name=row['project_name'],
                organization_id=row['organization_id'],
                organization_name=row['organization_name'],
                image_ref=row['image_ref'],
                seen_at=_parse_ts(row['created_at']),
            )
            for row in rows
        ]

    async def list_project_cve_ids(self, project_id: str) -> List[str]:
        rows = await self._fetchall('list_project_cve_ids', '''
            SELECT DISTINCT v.cve_id
            FROM vulnerability_instances i
            JOIN scan_results s ON s.id = i.scan_result_id
            JOIN vulnerabilities v ON v.id = i.vulnerability_id
            WHERE s.project_id = ?
            ORDER BY v.cve_id
        ''', (project_id,))
        return [row['cve_id'] for row in rows]

    async def list_projects(self, organization_id: str) -> List[Project]:
        rows = await self._fetchall('list_projects', '''
            SELECT id, name, organization_id FROM projects
            WHERE organization_id = ? ORDER BY name
        ''', (organization_id,))
        return [Project(id=row['id'], name=row['name'], organization_id=row['organization_id'])
                for row in rows]

    async def upsert_impact_snapshot(self, snapshot: ImpactSnapshot) -> None:
        await self._write('upsert_impact_snapshot', '''
            INSERT INTO vulnerability_impacts (
                vulnerability_id, affected_projects, affected_images,
                affected_services, impact_score, calculated_at
            ) VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(vulnerability_id) DO UPDATE SET
                affected_projects = excluded.affected_projects,
                affected_images = excluded.affected_images,
                affected_services = excluded.affected_services,
                impact_score = excluded.impact_score,
                calculated_at = excluded.calculated_at
        ''', (
            snapshot.vulnerability_id,
            json.dumps(snapshot.affected_projects),
            json.dumps(snapshot.affected_images),
            json.dumps(snapshot.affected_services),
            snapshot.impact_score,
            _ts(snapshot.calculated_at),
        ))

    async def get_impact_snapshot(self, vulnerability_id: str) -> Optional[ImpactSnapshot]:
        row = await self._fetchone('get_impact_snapshot', '''
            SELECT vulnerability_id, affected_projects, affected_images,
                   affected_services, impact_score, calculated_at
            FROM vulnerability_impacts WHERE vulnerability_id = ?
        ''', (vulnerability_id,))
        if not row:
            return None
        return ImpactSnapshot(
            vulnerability_id=row['vulnerability_id'],
            affected_projects=json.loads(row['affected_projects']),
            affected_images=json.loads(row['affected_images']),
            affected_services=json.loads(row['affected_services']),
            impact_score=row['impact_score'],
            calculated_at=_parse_ts(row['calculated_at']),
        )

    # Evidence store

    async def create_evidence(self, record: FixEvidenceRecord) -> FixEvidenceRecord:
        await self._write('create_evidence', '''
            INSERT INTO fix_evidence (
                id, instance_id, evidence_type, url, description,
                previous_value, new_value, attachments, created_by_id, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ''', (
            record.id,
            record.instance_id,
            record.evidence_type.value,
            record.url,
            record.description,
            record.previous_value,
            record.new_value,
            json.dumps([a.to_dict() for a in record.attachments]),
            record.created_by_id,
            _ts(record.created_at),
        ))
        return await self.find_evidence(record.id)

    async def find_evidence(self, evidence_id: str) -> Optional[FixEvidenceRecord]:
        row = await self._fetchone('find_evidence', f'''
            SELECT {EVIDENCE_COLUMNS}
            FROM fix_evidence e
            LEFT JOIN users u ON u.id = e.created_by_id
            WHERE e.id = ?
        ''', (evidence_id,))
        return _evidence_from_row(row) if row else None

    async def list_evidence(self, instance_ids: List[str]) -> List[FixEvidenceRecord]:
        records: List[FixEvidenceRecord] = []
        for chunk in _chunks(instance_ids):
            rows = await self._fetchall('list_evidence', f'''
                SELECT {EVIDENCE_COLUMNS}
                FROM fix_evidence e
                LEFT JOIN users u ON u.id = e.created_by_id
                WHERE e.instance_id IN ({_placeholders(len(chunk))})
                ORDER BY e.created_at DESC, e.rowid DESC
            ''', tuple(chunk))
            records.extend(_evidence_from_row(row) for row in rows)
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records

    async def delete_evidence(self, evidence_id: str) -> bool:
        deleted = await self._write('delete_evidence',
                                    'DELETE FROM fix_evidence WHERE id = ?', (evidence_id,))
        return deleted > 0

    # Ingestion

    async def save_organization(self, organization: Organization) -> None:
        await self._write('save_organization', '''
            INSERT INTO organizations (id, name) VALUES (?, ?)
            ON CONFLICT(id) DO UPDATE SET name = excluded.name
        ''', (organization.id, organization.name))

    async def save_project(self, project: Project) -> None:
        await self._write('save_project', '''
            INSERT INTO projects (id, name, organization_id) VALUES (?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                organization_id = excluded.organization_id
        ''', (project.id, project.name, project.organization_id))

    async def save_user(self, user: UserIdentity) -> None:
        await self._write('save_user', '''
            INSERT INTO users (id, name, email) VALUES (?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET name = excluded.name, email = excluded.email
        ''', (user.id, user.name, user.email))

    async def save_scan_result(self, scan_result: ScanResult) -> None:
        await self._write('save_scan_result', '''
            INSERT INTO scan_results (id, project_id, image_ref, created_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                project_id = excluded.project_id,
                image_ref = excluded.image_ref,
                created_at = excluded.created_at
        ''', (scan_result.id, scan_result.project_id, scan_result.image_ref,
              _ts(scan_result.created_at)))

    async def save_vulnerability(self, vulnerability: Vulnerability) -> None:
        await self._write('save_vulnerability', '''
            INSERT INTO vulnerabilities (id, cve_id, title, severity) VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                cve_id = excluded.cve_id,
                title = excluded.title,
                severity = excluded.severity
        ''', (vulnerability.id, vulnerability.cve_id, vulnerability.title,
              vulnerability.severity.value))

    async def save_instance(self, instance: VulnerabilityInstance) -> None:
        await self._write('save_instance', '''
            INSERT INTO vulnerability_instances (
                id, scan_result_id, vulnerability_id, pkg_name, pkg_version,
                status, assignee_id, discovered_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        ''', (
            instance.id,
            instance.scan_result_id,
            instance.vulnerability_id,
            instance.pkg_name,
            instance.pkg_version,
            instance.status.value,
            instance.assignee_id,
            _ts(instance.discovered_at),
        ))

    async def get_storage_stats(self) -> Dict[str, Any]:
        """Get storage statistics."""
        tables = [
            'organizations', 'projects', 'scan_results', 'vulnerabilities',
            'vulnerability_instances', 'workflow_history', 'fix_evidence',
            'vulnerability_impacts'
        ]
        stats: Dict[str, Any] = {'db_path': self.db_path}
        for table in tables:
            row = await self._fetchone('get_storage_stats', f'SELECT COUNT(*) AS total FROM {table}')
            stats[table] = row['total']
        stats['healthy'] = True
        return stats
