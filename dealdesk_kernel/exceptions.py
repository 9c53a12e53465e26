"""
Typed Exception Hierarchy for the Deal Desk Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the workflow core (an API layer, a UI adapter, a batch job) must
react differently to "that edge does not exist" and "you may not take that
edge". Matching on message text is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - RIGHT way to handle errors:
    try:
        executor.attempt_transition(deal_id, actor, DealStatus.APPROVED)
    except ForbiddenError as e:
        api_response(status=403, code=e.code, required=e.required)
    except InvalidTransitionError as e:
        api_response(status=409, code=e.code, current=e.current_status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from DealDeskError:

    DealDeskError (base)
    |
    +-- WorkflowError
    |   +-- InvalidTransitionError
    |   +-- ApprovalGateClosedError
    |   +-- DealNotEditableError
    |
    +-- AuthorizationError
    |   +-- ForbiddenError
    |   +-- UnknownRoleError
    |   +-- InvalidActorError
    |
    +-- ApprovalError
    |   +-- AlreadyDecidedError
    |   |   +-- ApprovalSupersededError
    |   +-- BusinessApprovalOpenError
    |
    +-- NotFoundError
    |   +-- DealNotFoundError
    |   +-- ApprovalNotFoundError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Workflow        | INVALID_TRANSITION          | Edge not in the status graph
                | APPROVAL_GATE_CLOSED        | Approvals incomplete for an advancing edge
                | DEAL_NOT_EDITABLE           | Terms edited outside an editable status
----------------|-----------------------------|-----------------------------------------
Authorization   | FORBIDDEN                   | Legal edge / decision, unauthorized actor
                | UNKNOWN_ROLE                | Role outside the fixed enumeration
                | INVALID_ACTOR               | Role/department pairing is malformed
----------------|-----------------------------|-----------------------------------------
Approval        | ALREADY_DECIDED             | Decision on a non-pending approval
                | APPROVAL_SUPERSEDED         | Approval belongs to a closed round
                | BUSINESS_APPROVAL_OPEN      | Stage-2 approval already open this round
----------------|-----------------------------|-----------------------------------------
NotFound        | DEAL_NOT_FOUND              | Unknown deal id
                | APPROVAL_NOT_FOUND          | Unknown approval id
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Deal status changed since it was read
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Decided approval / history row modified

===============================================================================
RETRY POLICY
===============================================================================

None of these errors is transient. The workflow core never retries:
   - InvalidTransitionError / ForbiddenError -> caller logic error, surface as-is
   - AlreadyDecidedError -> refetch and show the real outcome
   - OptimisticLockError -> refetch the deal; any retry belongs to the caller
"""


class DealDeskError(Exception):
    """
    Base exception for all deal desk errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "DEALDESK_ERROR"


# Workflow-related exceptions


class WorkflowError(DealDeskError):
    """Base exception for deal status workflow errors."""

    code: str = "WORKFLOW_ERROR"


class InvalidTransitionError(WorkflowError):
    """The requested edge does not exist in the status graph."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, current_status: str, requested_status: str):
        self.current_status = current_status
        self.requested_status = requested_status
        super().__init__(
            f"Invalid transition from '{current_status}' to '{requested_status}'"
        )


class ApprovalGateClosedError(WorkflowError):
    """Legal, authorized edge blocked because approvals are incomplete."""

    code: str = "APPROVAL_GATE_CLOSED"

    def __init__(self, deal_id: str, requested_status: str, reason: str):
        self.deal_id = deal_id
        self.requested_status = requested_status
        self.reason = reason
        super().__init__(
            f"Deal {deal_id} cannot move to '{requested_status}': {reason}"
        )


class DealNotEditableError(WorkflowError):
    """Deal terms can only change while the deal is in an editable status."""

    code: str = "DEAL_NOT_EDITABLE"

    def __init__(self, deal_id: str, status: str):
        self.deal_id = deal_id
        self.status = status
        super().__init__(f"Deal {deal_id} is not editable in status '{status}'")


# Authorization-related exceptions


class AuthorizationError(DealDeskError):
    """Base exception for authorization errors."""

    code: str = "AUTHORIZATION_ERROR"


class ForbiddenError(AuthorizationError):
    """Actor is not permitted to perform an otherwise legal operation."""

    code: str = "FORBIDDEN"

    def __init__(
        self,
        role: str,
        department: str | None,
        action: str,
        required: str,
    ):
        self.role = role
        self.department = department
        self.action = action
        self.required = required
        actor = f"{role}({department})" if department else role
        super().__init__(f"{actor} may not {action}; requires {required}")


class UnknownRoleError(AuthorizationError):
    """Role is outside the fixed role enumeration."""

    code: str = "UNKNOWN_ROLE"

    def __init__(self, role: str):
        self.role = role
        super().__init__(f"Unknown role: {role!r}")


class InvalidActorError(AuthorizationError):
    """Role/department pairing is malformed."""

    code: str = "INVALID_ACTOR"

    def __init__(self, role: str, department: str | None, reason: str):
        self.role = role
        self.department = department
        self.reason = reason
        super().__init__(f"Invalid actor {role}/{department}: {reason}")


# Approval-related exceptions


class ApprovalError(DealDeskError):
    """Base exception for approval errors."""

    code: str = "APPROVAL_ERROR"


class AlreadyDecidedError(ApprovalError):
    """Approval is no longer pending; the decision lost a race or repeats one."""

    code: str = "ALREADY_DECIDED"

    def __init__(
        self,
        approval_id: str,
        current_status: str,
        reason: str | None = None,
    ):
        self.approval_id = approval_id
        self.current_status = current_status
        self.reason = reason
        super().__init__(
            f"Approval {approval_id} already decided (status: {current_status})"
            if reason is None
            else f"Approval {approval_id} cannot be decided: {reason}"
        )


class ApprovalSupersededError(AlreadyDecidedError):
    """Approval belongs to a closed round or to a deal no longer in review."""

    code: str = "APPROVAL_SUPERSEDED"

    def __init__(self, approval_id: str, current_status: str, reason: str):
        super().__init__(approval_id, current_status, reason)


class BusinessApprovalOpenError(ApprovalError):
    """A business approval stage is already open for the current round."""

    code: str = "BUSINESS_APPROVAL_OPEN"

    def __init__(self, deal_id: str, revision_round: int):
        self.deal_id = deal_id
        self.revision_round = revision_round
        super().__init__(
            f"Deal {deal_id} already has a business approval in round {revision_round}"
        )


# Not-found exceptions


class NotFoundError(DealDeskError):
    """Base exception for unknown identifiers."""

    code: str = "NOT_FOUND"


class DealNotFoundError(NotFoundError):
    """Deal ID does not exist."""

    code: str = "DEAL_NOT_FOUND"

    def __init__(self, deal_id: str):
        self.deal_id = deal_id
        super().__init__(f"Deal not found: {deal_id}")


class ApprovalNotFoundError(NotFoundError):
    """Approval ID does not exist."""

    code: str = "APPROVAL_NOT_FOUND"

    def __init__(self, approval_id: str):
        self.approval_id = approval_id
        super().__init__(f"Approval not found: {approval_id}")


# Concurrency-related exceptions


class ConcurrencyError(DealDeskError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability-related exceptions


class ImmutabilityError(DealDeskError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted modification of an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify immutable {entity_type} {entity_id}: {reason}"
        )
