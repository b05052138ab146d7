"""Impact scoring: CVE blast radius, project and organization roll-ups."""

from .scoring import (
    SEVERITY_BASE_SCORES, CRITICAL_IMPACT_THRESHOLD, HIGH_IMPACT_THRESHOLD,
    calculate_impact_score
)
from .models import (
    ImpactedEntity, ImpactMetrics, CveImpactScope, ProjectImpactSummary,
    ProjectImpact, ProjectImpactOverview, OrganizationImpact
)
from .engine import ImpactScopeEngine

__all__ = [
    'SEVERITY_BASE_SCORES', 'CRITICAL_IMPACT_THRESHOLD', 'HIGH_IMPACT_THRESHOLD',
    'calculate_impact_score',
    'ImpactedEntity', 'ImpactMetrics', 'CveImpactScope', 'ProjectImpactSummary',
    'ProjectImpact', 'ProjectImpactOverview', 'OrganizationImpact',
    'ImpactScopeEngine'
]
