"""VulnTrack - Vulnerability remediation lifecycle and impact scoring

Tracks each detected vulnerability instance through a remediation
workflow with a full audit history, and scores how far a CVE has spread
across an organization's projects and container images.

This package provides:
- Remediation state machine with atomic, audited transitions
- Bulk transitions with per-item failure reporting
- CVE, project and organization impact scoring
- Fix evidence log with owner-only deletion
"""

__version__ = "1.0.0"
__author__ = "VulnTrack Development Team"
__description__ = "Vulnerability Remediation Lifecycle & Impact Scoring Engine"
__license__ = "MIT"

from .core import VulnTrackCore
from .core.exceptions import VulnTrackException, VulnTrackError

__all__ = [
    'VulnTrackCore',
    'VulnTrackException',
    'VulnTrackError',
    '__version__'
]
