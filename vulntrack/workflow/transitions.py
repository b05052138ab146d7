"""Remediation status transition table.

The table below is the only definition of which status changes are legal.
Every component that needs to know whether a transition is allowed calls
``is_valid_transition`` instead of re-encoding the rules.
"""

from types import MappingProxyType
from typing import Any, FrozenSet, List, Mapping

from ..models import VulnStatus


VALID_TRANSITIONS: Mapping[VulnStatus, FrozenSet[VulnStatus]] = MappingProxyType({
    VulnStatus.OPEN: frozenset({
        VulnStatus.ASSIGNED, VulnStatus.IN_PROGRESS,
        VulnStatus.IGNORED, VulnStatus.FALSE_POSITIVE,
    }),
    VulnStatus.ASSIGNED: frozenset({
        VulnStatus.IN_PROGRESS, VulnStatus.OPEN, VulnStatus.IGNORED,
    }),
    VulnStatus.IN_PROGRESS: frozenset({
        VulnStatus.FIX_SUBMITTED, VulnStatus.ASSIGNED, VulnStatus.IGNORED,
    }),
    VulnStatus.FIX_SUBMITTED: frozenset({VulnStatus.VERIFYING, VulnStatus.IN_PROGRESS}),
    VulnStatus.VERIFYING: frozenset({VulnStatus.FIXED, VulnStatus.IN_PROGRESS}),
    # OPEN from FIXED is a regression reopen
    VulnStatus.FIXED: frozenset({VulnStatus.CLOSED, VulnStatus.OPEN}),
    VulnStatus.CLOSED: frozenset({VulnStatus.OPEN}),
    VulnStatus.IGNORED: frozenset({VulnStatus.OPEN}),
    VulnStatus.FALSE_POSITIVE: frozenset({VulnStatus.OPEN}),
})

INITIAL_STATUS = VulnStatus.OPEN


def get_available_transitions(current_status: Any) -> List[VulnStatus]:
    """Return the statuses reachable from ``current_status``.

    Unrecognized statuses yield an empty list instead of raising, since
    presentation layers call this with whatever value they hold.
    """
    status = VulnStatus.parse(current_status)
    if status is None:
        return []
    # Enum declaration order keeps the output stable
    return [s for s in VulnStatus if s in VALID_TRANSITIONS[status]]


def is_valid_transition(from_status: Any, to_status: Any) -> bool:
    """Check whether ``to_status`` is reachable from ``from_status``."""
    source = VulnStatus.parse(from_status)
    target = VulnStatus.parse(to_status)
    if source is None or target is None:
        return False
    return target in VALID_TRANSITIONS[source]
