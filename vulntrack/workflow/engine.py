"""Remediation workflow engine."""

import logging
from typing import Any, Dict, List, Optional

from .events import WorkflowEvent, WorkflowEventBus, WorkflowEventType
from .models import (
    WorkflowTransition, TransitionResult, BulkFailure, BulkTransitionResult
)
from .transitions import get_available_transitions, is_valid_transition
from ..core.exceptions import InstanceNotFoundError, InvalidTransitionError
from ..core.logger import WorkflowAuditLogger
from ..models import VulnStatus, VulnerabilityInstance, WorkflowHistoryEntry
from ..storage.base import VulnerabilityStorage


AUTO_ASSIGN_COMMENT = "Auto-assigned to user"


def _status_label(status: Any) -> str:
    return status.value if isinstance(status, VulnStatus) else str(status)


class WorkflowEngine:
    """Drives vulnerability instances through the remediation state machine.

    All state lives in the storage collaborator; the engine itself is
    stateless between calls. Single-item operations raise on failure,
    bulk operations collect per-item failures.
    """

    def __init__(self, storage: VulnerabilityStorage,
                 event_bus: Optional[WorkflowEventBus] = None,
                 audit_logger: Optional[WorkflowAuditLogger] = None):
        """Initialize workflow engine.

        Args:
            storage: Shared vulnerability record store
            event_bus: Optional bus notified after each committed change
            audit_logger: Audit logger, defaults to the process-wide one
        """
        self.storage = storage
        self.event_bus = event_bus
        self.audit_logger = audit_logger or WorkflowAuditLogger()
        self.logger = logging.getLogger(__name__)

    def get_available_transitions(self, current_status: Any) -> List[VulnStatus]:
        """Get the statuses reachable from ``current_status``."""
        return get_available_transitions(current_status)

    def is_valid_transition(self, from_status: Any, to_status: Any) -> bool:
        """Check whether a transition is allowed by the transition table."""
        return is_valid_transition(from_status, to_status)

    async def transition_status(self, instance_id: str, acting_user_id: str,
                                transition: WorkflowTransition) -> TransitionResult:
        """Move an instance to a new status and record the change.

        The current status is read inside the same transaction that writes
        the new status and the history entry, so validation never relies on
        the caller's view of the instance.

        Args:
            instance_id: Vulnerability instance identifier
            acting_user_id: User performing the transition
            transition: Requested target status plus audit metadata

        Returns:
            TransitionResult describing the committed change

        Raises:
            InstanceNotFoundError: If the instance does not exist
            InvalidTransitionError: If the target is not reachable
            DatabaseError: If the transaction could not be committed
        """
        async with self.storage.transaction() as tx:
            instance = await tx.find_instance(instance_id)
            if instance is None:
                raise InstanceNotFoundError(instance_id)

            current = instance.status
            if not self.is_valid_transition(current, transition.to):
                raise InvalidTransitionError(
                    current.value, _status_label(transition.to), instance_id=instance_id
                )
            target = VulnStatus.parse(transition.to)

            reported_from = None
            if transition.from_status is not None:
                reported_from = _status_label(transition.from_status)
                if reported_from != current.value:
                    self.logger.warning(
                        f"Stale status for {instance_id}: caller reported {reported_from}, "
                        f"stored status is {current.value}"
                    )

            await tx.update_instance_status(instance_id, target)
            await tx.append_history(WorkflowHistoryEntry(
                instance_id=instance_id,
                from_status=current,
                to_status=target,
                changed_by_id=acting_user_id,
                comment=transition.comment,
                evidence=transition.evidence,
                reported_from_status=reported_from,
            ))

        result = TransitionResult(
            success=True,
            instance_id=instance_id,
            from_status=current,
            to_status=target,
        )

        self.audit_logger.log_transition(
            instance_id, current.value, target.value, acting_user_id, transition.comment
        )
        await self._emit(WorkflowEvent(
            event_type=WorkflowEventType.STATUS_TRANSITIONED,
            subject_id=instance_id,
            user_id=acting_user_id,
            data=result.to_dict(),
        ))

        return result

    async def bulk_transition(self, instance_ids: List[str], acting_user_id: str,
                              to_status: Any, comment: Optional[str] = None
                              ) -> BulkTransitionResult:
        """Transition many instances, each in its own transaction.

        One item's failure never aborts the rest of the batch.

        Args:
            instance_ids: Instances to transition, processed in order
            acting_user_id: User performing the transitions
            to_status: Target status for every instance
            comment: Optional comment recorded on each history entry

        Returns:
            BulkTransitionResult with successful ids and failure reasons
        """
        result = BulkTransitionResult()
        target_label = _status_label(to_status)

        for instance_id in instance_ids:
            try:
                instance = await self.storage.find_instance(instance_id)
                if instance is None:
                    result.failed.append(BulkFailure(instance_id, "Not found"))
                    continue

                if not self.is_valid_transition(instance.status, to_status):
                    result.failed.append(BulkFailure(
                        instance_id,
                        f"Invalid transition from {instance.status.value} to {target_label}"
                    ))
                    continue

                await self.transition_status(instance_id, acting_user_id, WorkflowTransition(
                    to=to_status,
                    from_status=instance.status,
                    comment=comment,
                ))
                result.successful.append(instance_id)

            except Exception as e:
                self.logger.error(f"Bulk transition failed for {instance_id}: {e}")
                result.failed.append(BulkFailure(instance_id, str(e) or "Unknown error"))

        failed = [f.to_dict() for f in result.failed]
        self.audit_logger.log_bulk_transition(target_label, acting_user_id, result.successful, failed)
        await self._emit(WorkflowEvent(
            event_type=WorkflowEventType.BULK_TRANSITION_COMPLETED,
            subject_id=target_label,
            user_id=acting_user_id,
            data=result.to_dict(),
        ))

        return result

    async def auto_assign(self, instance_id: str, assignee_id: str,
                          assigned_by_id: str) -> VulnerabilityInstance:
        """Assign an instance to a user and force its status to ASSIGNED.

        Assignment is legal from any status and does not consult the
        transition table. A history entry is written only when the status
        actually changes; the assignee is updated either way.

        Raises:
            InstanceNotFoundError: If the instance does not exist
        """
        async with self.storage.transaction() as tx:
            instance = await tx.find_instance(instance_id)
            if instance is None:
                raise InstanceNotFoundError(instance_id)

            previous = instance.status
            await tx.update_instance_status(instance_id, VulnStatus.ASSIGNED,
                                            assignee_id=assignee_id)

            if previous != VulnStatus.ASSIGNED:
                await tx.append_history(WorkflowHistoryEntry(
                    instance_id=instance_id,
                    from_status=previous,
                    to_status=VulnStatus.ASSIGNED,
                    changed_by_id=assigned_by_id,
                    comment=AUTO_ASSIGN_COMMENT,
                ))

        instance.status = VulnStatus.ASSIGNED
        instance.assignee_id = assignee_id

        self.audit_logger.log_assignment(instance_id, assignee_id, assigned_by_id, previous.value)
        await self._emit(WorkflowEvent(
            event_type=WorkflowEventType.INSTANCE_ASSIGNED,
            subject_id=instance_id,
            user_id=assigned_by_id,
            data={
                'assignee_id': assignee_id,
                'previous_status': previous.value,
                'status_changed': previous != VulnStatus.ASSIGNED,
            },
        ))

        return instance

    async def get_workflow_stats(self, project_id: str) -> Dict[str, int]:
        """Count a project's instances per current status.

        Statuses with no instances are absent from the result.
        """
        scan_result_ids = await self.storage.list_scan_result_ids(project_id)
        if not scan_result_ids:
            return {}

        counts = await self.storage.group_count_by_status(scan_result_ids)
        return {status.value: count for status, count in counts.items() if count > 0}

    async def get_workflow_history(self, instance_id: str) -> List[WorkflowHistoryEntry]:
        """Get an instance's history, newest first, with the acting user."""
        return await self.storage.list_history(instance_id)

    async def _emit(self, event: WorkflowEvent) -> None:
        if self.event_bus is not None:
            await self.event_bus.emit(event)
