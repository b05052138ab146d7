"""Tests for the impact scope engine."""

import math
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
import pytest_asyncio

from vulntrack.core.exceptions import CveNotFoundError, ResourceNotFoundError
from vulntrack.impact import ImpactScopeEngine, CveImpactScope, ImpactMetrics, ProjectImpact
from vulntrack.impact.engine import summarize_impacts
from vulntrack.models import Severity, Vulnerability, Occurrence
from vulntrack.workflow import WorkflowEventBus, WorkflowEventType


def _scope(cve_id: str, score: float) -> CveImpactScope:
    now = datetime.now()
    return CveImpactScope(
        cve_id=cve_id,
        title=cve_id,
        severity=Severity.HIGH,
        total_impact_score=score,
        metrics=ImpactMetrics(1, 1, 1, now, now),
    )


def _project_impact(project_id: str, scores) -> ProjectImpact:
    impacts = sorted((_scope(cve_id, score) for cve_id, score in scores.items()),
                     key=lambda impact: impact.total_impact_score, reverse=True)
    return ProjectImpact(project_id, impacts, summarize_impacts(impacts))


LOW_SCORE = 2 * (1 + (math.log10(2) + math.log10(2)) * 0.2 + math.log10(2) * 0.1)
MEDIUM_SCORE = 5 * (1 + (math.log10(2) + math.log10(2)) * 0.2 + math.log10(2) * 0.1)


@pytest_asyncio.fixture
async def event_bus():
    return WorkflowEventBus()


@pytest_asyncio.fixture
async def engine(seeded_storage, event_bus):
    return ImpactScopeEngine(seeded_storage, event_bus=event_bus)


@pytest.mark.asyncio
class TestCveImpact:
    """Test cases for calculate_cve_impact."""

    async def test_cve_spread_across_projects_and_images(self, engine):
        impact = await engine.calculate_cve_impact('CVE-2024-0001')

        assert impact.cve_id == 'CVE-2024-0001'
        assert impact.title == 'OpenSSL remote code execution'
        assert impact.severity == Severity.CRITICAL
        assert impact.total_impact_score == 10.0

        projects = {entity.id: entity for entity in impact.impacted_projects}
        assert set(projects) == {'proj-api', 'proj-web'}
        assert projects['proj-api'].name == 'Acme/api'
        assert projects['proj-api'].occurrences == 2
        assert projects['proj-api'].last_seen == datetime(2024, 2, 1, 9, 0)
        assert projects['proj-web'].occurrences == 1

        images = {entity.id: entity for entity in impact.impacted_images}
        assert len(images) == 3
        image = images['registry.example.com/web:2.0']
        assert image.name == 'registry.example.com/web:2.0'
        assert image.type == 'image'
        assert image.occurrences == 1

        assert impact.impacted_services == []

        metrics = impact.metrics
        assert metrics.project_count == 2
        assert metrics.image_count == 3
        assert metrics.total_occurrences == 3
        assert metrics.oldest_occurrence == datetime(2024, 1, 1, 9, 0)
        assert metrics.newest_occurrence == datetime(2024, 3, 1, 9, 0)

    async def test_untitled_cve_uses_cve_id_as_title(self, engine):
        impact = await engine.calculate_cve_impact('CVE-2024-0002')

        assert impact.title == 'CVE-2024-0002'
        assert impact.total_impact_score == LOW_SCORE

    async def test_unrecognized_severity_scores_with_base_one(self, engine, seeded_storage):
        await seeded_storage._write('test', '''
            UPDATE vulnerabilities SET severity = 'negligible' WHERE id = 'vuln-2'
        ''', ())

        impact = await engine.calculate_cve_impact('CVE-2024-0002')

        assert impact.severity == Severity.UNKNOWN
        assert impact.total_impact_score == pytest.approx(LOW_SCORE / 2)

    async def test_unknown_cve(self, engine):
        with pytest.raises(CveNotFoundError) as exc_info:
            await engine.calculate_cve_impact('CVE-1999-9999')

        assert isinstance(exc_info.value, ResourceNotFoundError)
        assert 'CVE-1999-9999' in exc_info.value.message

    async def test_cve_without_occurrences(self, engine, seeded_storage):
        await seeded_storage.save_vulnerability(Vulnerability('vuln-9', 'CVE-2024-0009', Severity.HIGH))

        before = datetime.now()
        impact = await engine.calculate_cve_impact('CVE-2024-0009')

        assert impact.impacted_projects == []
        assert impact.impacted_images == []
        assert impact.metrics.total_occurrences == 0
        assert impact.metrics.oldest_occurrence >= before
        assert impact.metrics.newest_occurrence >= before
        assert impact.total_impact_score == 8

    async def test_missing_organization_name(self, engine):
        with patch.object(engine.storage, 'list_occurrences') as list_occurrences:
            list_occurrences.return_value = [Occurrence(
                instance_id='inst-x', scan_result_id='scan-x', project_id='proj-x',
                project_name='orphan', organization_id=None, organization_name=None,
                image_ref='img:1', seen_at=datetime(2024, 5, 1),
            )]
            impact = await engine.calculate_cve_impact('CVE-2024-0001')

        assert impact.impacted_projects[0].name == 'Unknown/orphan'

    async def test_to_dict(self, engine):
        data = (await engine.calculate_cve_impact('CVE-2024-0003')).to_dict()

        assert data['severity'] == 'MEDIUM'
        assert data['impacted_services'] == []
        assert data['metrics']['project_count'] == 1
        assert data['impacted_projects'][0]['name'] == 'Acme/web'


@pytest.mark.asyncio
class TestProjectImpact:
    """Test cases for calculate_project_impact."""

    async def test_project_impact_sorted_with_summary(self, engine):
        impact = await engine.calculate_project_impact('proj-api')

        assert [c.cve_id for c in impact.cve_impacts] == ['CVE-2024-0001', 'CVE-2024-0002']
        summary = impact.summary
        assert summary.total_cves == 2
        assert summary.critical_impact == 1
        assert summary.high_impact == 0
        assert summary.average_impact_score == pytest.approx((10.0 + LOW_SCORE) / 2)

    async def test_project_without_cves(self, engine):
        impact = await engine.calculate_project_impact('proj-empty')

        assert impact.cve_impacts == []
        assert impact.summary.total_cves == 0
        assert impact.summary.average_impact_score == 0

    async def test_high_impact_bucket(self, engine):
        scores = {'CVE-A': 9.5, 'CVE-B': 8.0, 'CVE-C': 7.0, 'CVE-D': 6.9}
        summary = summarize_impacts([_scope(cve, score) for cve, score in scores.items()])

        assert summary.critical_impact == 1
        assert summary.high_impact == 2
        assert summary.average_impact_score == pytest.approx(31.4 / 4)


@pytest.mark.asyncio
class TestOrganizationImpact:
    """Test cases for calculate_organization_impact."""

    async def test_organization_impact(self, engine):
        impact = await engine.calculate_organization_impact('org-acme')

        assert [c.cve_id for c in impact.top_impact_cves] == [
            'CVE-2024-0001', 'CVE-2024-0003', 'CVE-2024-0002'
        ]
        assert [p.project_id for p in impact.project_summaries] == [
            'proj-web', 'proj-api', 'proj-empty'
        ]
        web = impact.project_summaries[0].summary
        assert web.average_impact_score == pytest.approx((10.0 + MEDIUM_SCORE) / 2)
        assert impact.project_summaries[-1].summary.average_impact_score == 0

    async def test_organization_without_projects(self, engine):
        impact = await engine.calculate_organization_impact('org-other')

        assert impact.top_impact_cves == []
        assert impact.project_summaries == []

    async def test_keeps_highest_score_per_cve(self, engine):
        async def fake_project_impact(project_id):
            return {
                'proj-api': _project_impact(project_id, {'CVE-SHARED': 4.0, 'CVE-API': 3.0}),
                'proj-web': _project_impact(project_id, {'CVE-SHARED': 7.5}),
                'proj-empty': _project_impact(project_id, {}),
            }[project_id]

        with patch.object(engine, 'calculate_project_impact', new=fake_project_impact):
            impact = await engine.calculate_organization_impact('org-acme')

        scores = {c.cve_id: c.total_impact_score for c in impact.top_impact_cves}
        assert scores == {'CVE-SHARED': 7.5, 'CVE-API': 3.0}

    async def test_top_cves_limited_and_sorted(self, engine):
        async def fake_project_impact(project_id):
            offset = {'proj-api': 0, 'proj-web': 8, 'proj-empty': 16}[project_id]
            return _project_impact(project_id, {
                f'CVE-{offset + i:04d}': (offset + i) * 0.4 for i in range(8)
            })

        with patch.object(engine, 'calculate_project_impact', new=fake_project_impact):
            impact = await engine.calculate_organization_impact('org-acme')

        scores = [c.total_impact_score for c in impact.top_impact_cves]
        assert len(scores) == 10
        assert scores == sorted(scores, reverse=True)
        assert impact.top_impact_cves[0].cve_id == 'CVE-0023'

    async def test_top_cve_limit_is_configurable(self, seeded_storage):
        engine = ImpactScopeEngine(seeded_storage, top_cve_limit=2)

        impact = await engine.calculate_organization_impact('org-acme')

        assert len(impact.top_impact_cves) == 2


@pytest.mark.asyncio
class TestStoredImpact:
    """Test cases for impact snapshots."""

    async def test_store_and_read_snapshot(self, engine, seeded_storage):
        snapshot = await engine.store_impact_calculation('CVE-2024-0001')

        assert snapshot.vulnerability_id == 'vuln-1'
        assert snapshot.impact_score == 10.0
        assert sorted(snapshot.affected_projects) == ['proj-api', 'proj-web']
        assert len(snapshot.affected_images) == 3
        assert snapshot.affected_services == []

        stored = await engine.get_stored_impact('CVE-2024-0001')
        assert stored.impact_score == snapshot.impact_score
        assert stored.affected_projects == snapshot.affected_projects
        assert stored.calculated_at == snapshot.calculated_at

    async def test_store_overwrites_previous_snapshot(self, engine, seeded_storage):
        await engine.store_impact_calculation('CVE-2024-0003')
        first = await engine.get_stored_impact('CVE-2024-0003')

        await seeded_storage.save_vulnerability(
            Vulnerability('vuln-3', 'CVE-2024-0003', Severity.CRITICAL, 'zlib buffer over-read'))
        await engine.store_impact_calculation('CVE-2024-0003')
        second = await engine.get_stored_impact('CVE-2024-0003')

        assert first.impact_score == MEDIUM_SCORE
        assert second.impact_score == 10.0
        assert (await seeded_storage.get_storage_stats())['vulnerability_impacts'] == 1

    async def test_snapshot_absent_until_stored(self, engine):
        assert await engine.get_stored_impact('CVE-2024-0002') is None

    async def test_store_unknown_cve(self, engine):
        with pytest.raises(CveNotFoundError):
            await engine.store_impact_calculation('CVE-1999-9999')

    async def test_snapshot_age(self, engine):
        snapshot = await engine.store_impact_calculation('CVE-2024-0002')

        later = snapshot.calculated_at + timedelta(hours=2)
        assert snapshot.age(later) == timedelta(hours=2)

    async def test_store_emits_event(self, engine, event_bus):
        await engine.store_impact_calculation('CVE-2024-0001')

        events = await event_bus.get_event_history(subject_id='CVE-2024-0001')
        assert events[0].event_type == WorkflowEventType.IMPACT_SNAPSHOT_STORED
        assert events[0].source == 'impact_engine'
