"""Tests for the command line interface."""

import json

import pytest
from click.testing import CliRunner

from vulntrack import __version__
from vulntrack.cli import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def invoke(runner, config_file, seeded_db):
    def _invoke(*args):
        return runner.invoke(cli, ['--config', str(config_file), *args], obj={})
    return _invoke


class TestWorkflowCommands:
    """Test cases for the workflow command group."""

    def test_transition_updates_status(self, invoke):
        result = invoke('workflow', 'transition', 'inst-1', 'assigned', '--user', 'user-alice')

        assert result.exit_code == 0, result.output
        assert 'Transitioned inst-1' in result.output

        stats = invoke('workflow', 'stats', 'proj-api', '--json')
        assert json.loads(stats.output) == {'OPEN': 2, 'ASSIGNED': 1}

    def test_invalid_transition_exits_with_error(self, invoke):
        result = invoke('workflow', 'transition', 'inst-1', 'FIXED', '--user', 'user-alice')

        assert result.exit_code == 1
        assert 'Invalid transition from OPEN to FIXED' in result.output

    def test_unknown_target_status_is_rejected(self, invoke):
        result = invoke('workflow', 'transition', 'inst-1', 'DONE', '--user', 'user-alice')

        assert result.exit_code == 1
        assert 'Invalid transition from OPEN to DONE' in result.output

    def test_bulk_json(self, invoke):
        result = invoke('workflow', 'bulk', 'ASSIGNED', 'inst-1', 'inst-missing',
                        '--user', 'user-alice', '--json')

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data['successful'] == ['inst-1']
        assert data['failed'] == [{'id': 'inst-missing', 'reason': 'Not found'}]

    def test_assign_and_history(self, invoke):
        assert invoke('workflow', 'assign', 'inst-4', 'user-bob', '--by', 'user-alice').exit_code == 0

        result = invoke('workflow', 'history', 'inst-4')

        assert result.exit_code == 0, result.output
        assert 'ASSIGNED' in result.output

    def test_available_transitions(self, runner):
        result = runner.invoke(cli, ['workflow', 'transitions', 'OPEN'], obj={})

        assert result.exit_code == 0
        assert result.output.split() == ['ASSIGNED', 'IN_PROGRESS', 'IGNORED', 'FALSE_POSITIVE']


class TestImpactCommands:
    """Test cases for the impact command group."""

    def test_project_impact_json(self, invoke):
        result = invoke('impact', 'project', 'proj-empty', '--json')

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data['cve_impacts'] == []
        assert data['summary']['average_impact_score'] == 0

    def test_cve_impact_json(self, invoke):
        result = invoke('impact', 'cve', 'CVE-2024-0001', '--json')

        data = json.loads(result.output)
        assert data['total_impact_score'] == 10.0
        assert data['metrics']['project_count'] == 2

    def test_unknown_cve(self, invoke):
        result = invoke('impact', 'cve', 'CVE-1999-9999')

        assert result.exit_code == 1
        assert 'CVE not found' in result.output

    def test_store_impact(self, invoke):
        result = invoke('impact', 'store', 'CVE-2024-0003')

        assert result.exit_code == 0, result.output
        assert 'Stored impact for CVE-2024-0003' in result.output


class TestEvidenceCommands:
    """Test cases for the evidence command group."""

    def test_only_author_can_delete(self, invoke):
        added = invoke('evidence', 'add', 'inst-1', '--type', 'pr_link', '--user', 'user-alice',
                       '--url', 'https://git.example.com/pr/7')
        assert added.exit_code == 0, added.output
        evidence_id = added.output.split()[-1]

        denied = invoke('evidence', 'delete', evidence_id, '--user', 'user-bob')
        assert denied.exit_code == 1
        assert 'Can only delete your own evidence' in denied.output

        deleted = invoke('evidence', 'delete', evidence_id, '--user', 'user-alice')
        assert deleted.exit_code == 0, deleted.output

    def test_summary_json(self, invoke):
        invoke('evidence', 'add', 'inst-4', '--type', 'WORKAROUND', '--user', 'user-bob',
               '--description', 'Disabled curl in image')

        result = invoke('evidence', 'summary', 'proj-api', '--json')

        data = json.loads(result.output)
        assert data['total'] == 1
        assert data['by_type'] == {'WORKAROUND': 1}


class TestGeneralCommands:
    """Test cases for top-level commands."""

    def test_version(self, runner):
        result = runner.invoke(cli, ['--version'])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_status(self, invoke):
        result = invoke('status')

        assert result.exit_code == 0, result.output
        assert 'VulnTrack Status' in result.output
        assert 'healthy' in result.output
