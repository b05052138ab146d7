"""Test configuration and utilities for VulnTrack test suite."""

import asyncio
import tempfile
import shutil
from datetime import datetime
from pathlib import Path
from typing import Dict, Any

import pytest
import pytest_asyncio

from vulntrack.models import (
    Organization, Project, UserIdentity, ScanResult, Vulnerability,
    VulnerabilityInstance, Severity
)
from vulntrack.storage import SqliteVulnerabilityStorage


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests."""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir) -> Dict[str, Any]:
    """Basic test configuration."""
    return {
        'system': {
            'version': '1.0.0',
            'environment': 'testing',
            'logs_dir': str(temp_dir / 'logs')
        },
        'logging': {
            'level': 'ERROR',  # Reduce noise in tests
            'format': '%(message)s',
            'file_logging': False,
            'file_rotation': False,
            'max_file_size': '1MB',
            'backup_count': 1
        },
        'database': {
            'type': 'sqlite',
            'path': str(temp_dir / 'vulntrack.db')
        },
        'impact': {
            'top_cve_limit': 10
        }
    }


@pytest.fixture
def config_file(temp_dir, test_config):
    """Create temporary configuration file."""
    import yaml

    config_file = temp_dir / 'test_config.yml'
    with open(config_file, 'w') as f:
        yaml.dump(test_config, f)

    return config_file


async def seed_storage(storage: SqliteVulnerabilityStorage) -> None:
    """Populate storage with a small estate.

    Acme owns proj-api (two scans of the api image), proj-web (one scan)
    and proj-empty (no scans). CVE-2024-0001 (CRITICAL) is found in all
    three scans, CVE-2024-0002 (LOW, untitled) only in the first api scan
    and CVE-2024-0003 (MEDIUM) only in the web scan.
    """
    await storage.save_organization(Organization('org-acme', 'Acme'))
    await storage.save_organization(Organization('org-other', 'Other'))

    await storage.save_project(Project('proj-api', 'api', 'org-acme'))
    await storage.save_project(Project('proj-web', 'web', 'org-acme'))
    await storage.save_project(Project('proj-empty', 'empty', 'org-acme'))

    await storage.save_user(UserIdentity('user-alice', 'Alice', 'alice@example.com'))
    await storage.save_user(UserIdentity('user-bob', 'Bob', 'bob@example.com'))

    await storage.save_scan_result(ScanResult(
        'scan-api-1', 'proj-api', 'registry.example.com/api:1.0', datetime(2024, 1, 1, 9, 0)))
    await storage.save_scan_result(ScanResult(
        'scan-api-2', 'proj-api', 'registry.example.com/api:1.1', datetime(2024, 2, 1, 9, 0)))
    await storage.save_scan_result(ScanResult(
        'scan-web-1', 'proj-web', 'registry.example.com/web:2.0', datetime(2024, 3, 1, 9, 0)))

    await storage.save_vulnerability(Vulnerability(
        'vuln-1', 'CVE-2024-0001', Severity.CRITICAL, 'OpenSSL remote code execution'))
    await storage.save_vulnerability(Vulnerability('vuln-2', 'CVE-2024-0002', Severity.LOW))
    await storage.save_vulnerability(Vulnerability(
        'vuln-3', 'CVE-2024-0003', Severity.MEDIUM, 'zlib buffer over-read'))

    instances = [
        ('inst-1', 'scan-api-1', 'vuln-1', 'openssl', '1.1.1k'),
        ('inst-2', 'scan-api-2', 'vuln-1', 'openssl', '1.1.1k'),
        ('inst-3', 'scan-web-1', 'vuln-1', 'openssl', '1.1.1k'),
        ('inst-4', 'scan-api-1', 'vuln-2', 'curl', '7.68.0'),
        ('inst-5', 'scan-web-1', 'vuln-3', 'zlib', '1.2.11'),
    ]
    for instance_id, scan_id, vuln_id, pkg_name, pkg_version in instances:
        await storage.save_instance(VulnerabilityInstance(
            id=instance_id,
            scan_result_id=scan_id,
            vulnerability_id=vuln_id,
            pkg_name=pkg_name,
            pkg_version=pkg_version,
        ))


@pytest_asyncio.fixture
async def storage(temp_dir):
    """Empty SQLite storage in a temporary directory."""
    storage = SqliteVulnerabilityStorage(str(temp_dir / 'vulntrack.db'))
    await storage.initialize()
    yield storage
    await storage.cleanup()


@pytest_asyncio.fixture
async def seeded_storage(storage):
    """SQLite storage holding the estate described in ``seed_storage``."""
    await seed_storage(storage)
    return storage


@pytest.fixture
def seeded_db(test_config):
    """Seed the configured database file for synchronous (CLI) tests."""
    async def seed():
        storage = SqliteVulnerabilityStorage(test_config['database']['path'])
        try:
            await storage.initialize()
            await seed_storage(storage)
        finally:
            await storage.cleanup()

    asyncio.run(seed())
    return test_config['database']['path']
