"""Authorization policy: can principal P perform action A on resource R?

Rules are declared per ``(resource_type, action)`` pair. Every rule in the
entry must pass; the first failing rule's reason is raised as
``Forbidden``. Gates (immutability, self-protection, protected targets)
run before role allow-lists, which run before ownership and scope checks,
so an otherwise authorized action on an immutable resource is still
denied for the immutability reason. A pair with no entry is denied.
"""
from enum import IntEnum
from typing import Callable, Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union

from app.core.errors import Forbidden
from app.core.learning_level import (
    can_access_room,
    has_completed_onboarding,
    level_exceeds,
    resolve_learning_level,
)
from app.core.logging import get_logger
from app.domain.principal import ADMIN_ROLES, STAFF_ROLES, Principal, Role, is_super_admin
from app.domain.resources import (
    Action,
    Lesson,
    Resource,
    ResourceType,
    Room,
    RoomKind,
    Submission,
    Task,
    UserResource,
)

logger = get_logger(__name__)

RuleKey = Tuple[ResourceType, Action]
Target = Union[Resource, ResourceType]


class RuleKind(IntEnum):
    """Evaluation order. Lower runs first."""
    GATE = 0
    ROLE = 1
    SCOPE = 2


class Rule:
    """A single requirement. Subclasses implement ``denies``."""

    kind = RuleKind.SCOPE

    def __init__(self, reason: str):
        self.reason = reason

    def denies(self, principal: Principal, resource: Optional[Resource]) -> bool:
        raise NotImplementedError

    def check(self, principal: Principal, resource: Optional[Resource]) -> Optional[str]:
        """Return the denial reason, or None if the rule passes."""
        return self.reason if self.denies(principal, resource) else None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.reason!r})"


class RoleAllowList(Rule):
    """Passes only for principals whose role is in ``roles``."""

    kind = RuleKind.ROLE

    def __init__(self, roles: Iterable[Role], reason: str):
        super().__init__(reason)
        self.roles = frozenset(roles)

    def denies(self, principal, resource):
        return principal.role not in self.roles


class Ownership(Rule):
    """Passes when ``resource.<field>`` equals the principal's id.

    ``field`` defaults to the resource's declared owner field. Principals
    whose role is in ``bypass_roles`` pass regardless of ownership.
    """

    def __init__(self, reason: str, field: Optional[str] = None, bypass_roles: Iterable[Role] = ()):
        super().__init__(reason)
        self.field = field
        self.bypass_roles = frozenset(bypass_roles)

    def denies(self, principal, resource):
        if principal.role in self.bypass_roles:
            return False
        if resource is None:
            return True
        owner = getattr(resource, self.field) if self.field else resource.owner_id
        return owner is None or owner != principal.id


class AssignedToPrincipal(Rule):
    """Tasks assigned to nobody in particular are open to every student."""

    def __init__(self, reason: str, bypass_roles: Iterable[Role] = ()):
        super().__init__(reason)
        self.bypass_roles = frozenset(bypass_roles)

    def denies(self, principal, resource):
        if principal.role in self.bypass_roles:
            return False
        if not isinstance(resource, Task):
            return True
        return resource.assigned_to is not None and resource.assigned_to != principal.id


class ImmutableWhen(Rule):
    """Denies once ``predicate(resource)`` reports a terminal state."""

    kind = RuleKind.GATE

    def __init__(self, predicate: Callable[[Resource], bool], reason: str):
        super().__init__(reason)
        self.predicate = predicate

    def denies(self, principal, resource):
        return resource is not None and bool(self.predicate(resource))


class SelfProtection(Rule):
    """An actor may never target their own account."""

    kind = RuleKind.GATE

    def denies(self, principal, resource):
        return isinstance(resource, UserResource) and resource.id == principal.id


class ProtectedAccount(Rule):
    """Super admin accounts are never modified or removed by anyone."""

    kind = RuleKind.GATE

    def __init__(self, reason: str, super_admin_email: Optional[str] = None):
        super().__init__(reason)
        self.super_admin_email = super_admin_email

    def denies(self, principal, resource):
        if not isinstance(resource, UserResource):
            return False
        return is_super_admin(resource.role, resource.email, self.super_admin_email)


class OnboardingRequired(Rule):
    """Students stay out of the community until onboarding is complete."""

    def denies(self, principal, resource):
        return not has_completed_onboarding(principal)


class RoomLevelGate(Rule):
    """Students may only enter the global room matching their learning level."""

    def denies(self, principal, resource):
        if not isinstance(resource, Room):
            return True
        if resource.kind != RoomKind.GLOBAL:
            return False
        return not can_access_room(resolve_learning_level(principal), resource.name, principal.role)


class RoomParticipation(Rule):
    """Direct rooms are visible only to their participants, whatever the role."""

    def denies(self, principal, resource):
        if not isinstance(resource, Room):
            return True
        if resource.kind != RoomKind.DIRECT:
            return False
        return principal.id not in resource.participants


class LessonPrerequisite(Rule):
    """Students need prerequisite progress for lessons above the course level."""

    def denies(self, principal, resource):
        if principal.role != Role.STUDENT or not isinstance(resource, Lesson):
            return False
        if resource.required_level is None:
            return False
        if not level_exceeds(resource.required_level, resource.course_level):
            return False
        return not resource.prerequisite_met


class AuthorizationPolicy:
    """Single decision point for every gated operation.

    Example:
        >>> policy = default_policy()
        >>> policy.authorize(student, Action.DELETE, submission)
    """

    def __init__(self, rules: Mapping[RuleKey, Sequence[Rule]]):
        self._rules: Dict[RuleKey, Tuple[Rule, ...]] = {
            key: tuple(sorted(entry, key=lambda rule: rule.kind))
            for key, entry in rules.items()
        }

    def rules_for(self, resource_type: ResourceType, action: Action) -> Tuple[Rule, ...]:
        return self._rules.get((ResourceType(resource_type), Action(action)), ())

    def authorize(self, principal: Principal, action: Action, resource: Target) -> None:
        """Raise ``Forbidden`` unless ``principal`` may perform ``action``.

        Args:
            principal: The acting principal
            action: Requested action
            resource: A resource snapshot, or a ResourceType for
                collection-level actions (list, create without a draft)

        Raises:
            Forbidden: With the reason of the first failing rule
        """
        if isinstance(resource, ResourceType):
            resource_type, snapshot = resource, None
        else:
            resource_type, snapshot = resource.resource_type, resource

        key = (ResourceType(resource_type), Action(action))
        entry = self._rules.get(key)
        if not entry:
            self._deny(principal, key, snapshot, "Action not permitted")

        for rule in entry:
            reason = rule.check(principal, snapshot)
            if reason is not None:
                self._deny(principal, key, snapshot, reason)

    def is_allowed(self, principal: Principal, action: Action, resource: Target) -> bool:
        try:
            self.authorize(principal, action, resource)
        except Forbidden:
            return False
        return True

    def _deny(self, principal: Principal, key: RuleKey, snapshot: Optional[Resource], reason: str):
        resource_type, action = key
        logger.info(
            f"Access denied: {action.value} on {resource_type.value}",
            extra={
                "principal_id": principal.id,
                "role": principal.role.value,
                "action": action.value,
                "resource_type": resource_type.value,
                "resource_id": getattr(snapshot, "id", None),
                "reason": reason,
            },
        )
        raise Forbidden(reason)


def _submission_reviewed(submission: Submission) -> bool:
    return submission.is_reviewed


def _task_completed(task: Task) -> bool:
    return task.completed


def default_rules(super_admin_email: Optional[str] = None) -> Dict[RuleKey, Sequence[Rule]]:
    """The platform's rule table, keyed by ``(resource_type, action)``."""
    admins_only = RoleAllowList(ADMIN_ROLES, "Admin access required")
    staff_only = RoleAllowList(STAFF_ROLES, "Not authorized")
    students_only = RoleAllowList({Role.STUDENT}, "Students only")
    anyone = RoleAllowList(Role, "Authentication required")

    R, A = ResourceType, Action
    return {
        # Accounts
        (R.USER, A.READ): [Ownership("Not authorized", bypass_roles=ADMIN_ROLES)],
        (R.USER, A.LIST): [admins_only],
        (R.USER, A.APPROVE): [
            SelfProtection("Cannot review your own registration"),
            ProtectedAccount("Cannot review Super Admin registration", super_admin_email),
            admins_only,
        ],
        (R.USER, A.UPDATE): [
            SelfProtection("Cannot change your own learning level"),
            RoleAllowList(STAFF_ROLES, "Instructor or admin access required"),
        ],
        (R.USER, A.CHANGE_ROLE): [
            SelfProtection("Cannot change your own role"),
            ProtectedAccount("Cannot change Super Admin role", super_admin_email),
            admins_only,
        ],
        (R.USER, A.DELETE): [
            SelfProtection("Cannot delete your own account"),
            ProtectedAccount("Cannot delete Super Admin account", super_admin_email),
            admins_only,
        ],

        # Courses and lessons
        (R.COURSE, A.READ): [anyone],
        (R.COURSE, A.CREATE): [staff_only],
        (R.COURSE, A.UPDATE): [staff_only],
        (R.COURSE, A.DELETE): [RoleAllowList(ADMIN_ROLES, "Admin or Super Admin only")],
        (R.LESSON, A.READ): [
            anyone,
            LessonPrerequisite("This lesson requires completing prerequisite courses"),
        ],
        (R.LESSON, A.CREATE): [staff_only],
        (R.LESSON, A.UPDATE): [staff_only],
        (R.LESSON, A.DELETE): [staff_only],

        # Demo trading tasks
        (R.TASK, A.READ): [AssignedToPrincipal("Task not assigned to you", bypass_roles=STAFF_ROLES)],
        (R.TASK, A.CREATE): [RoleAllowList(STAFF_ROLES, "Only instructors and admins can create tasks")],
        (R.TASK, A.UPDATE): [
            ImmutableWhen(_task_completed, "Cannot modify a completed task"),
            RoleAllowList(STAFF_ROLES, "Only instructors and admins can edit tasks"),
            Ownership("You can only edit your own tasks", bypass_roles=ADMIN_ROLES),
        ],
        (R.TASK, A.DELETE): [
            RoleAllowList(STAFF_ROLES, "Only instructors and admins can delete tasks"),
            Ownership("You can only delete your own tasks", bypass_roles=ADMIN_ROLES),
        ],
        (R.TASK, A.COMPLETE): [
            ImmutableWhen(_task_completed, "Task is already completed"),
            RoleAllowList({Role.STUDENT}, "Only students can complete tasks"),
            AssignedToPrincipal("Task not found or not assigned to you"),
        ],
        (R.TASK, A.SUBMIT): [
            RoleAllowList({Role.STUDENT}, "Only students can submit tasks"),
            AssignedToPrincipal("Task not found or not assigned to you"),
        ],
        (R.TASK, A.LIST_SUBMISSIONS): [
            RoleAllowList(STAFF_ROLES, "Only instructors and admins can view submissions"),
            Ownership("You can only view submissions for your own tasks", bypass_roles=ADMIN_ROLES),
        ],

        # Submissions
        (R.SUBMISSION, A.CREATE): [RoleAllowList({Role.STUDENT}, "Only students can submit tasks")],
        (R.SUBMISSION, A.UPDATE): [
            ImmutableWhen(_submission_reviewed, "Cannot modify a submission that has been reviewed."),
            RoleAllowList({Role.STUDENT}, "Only students can update their submissions"),
            Ownership("You can only update your own submissions"),
        ],
        (R.SUBMISSION, A.DELETE): [
            ImmutableWhen(_submission_reviewed, "Cannot delete a submission that has been reviewed."),
            RoleAllowList({Role.STUDENT}, "Only students can delete their submissions"),
            Ownership("You can only delete your own submissions"),
        ],
        (R.SUBMISSION, A.REVIEW): [
            RoleAllowList(STAFF_ROLES, "Only instructors and admins can review submissions"),
            Ownership(
                "You can only review submissions for your own tasks",
                field="task_owner_id",
                bypass_roles=ADMIN_ROLES,
            ),
        ],

        # Community
        (R.ROOM, A.READ): [
            OnboardingRequired("Complete onboarding to access the community"),
            RoomParticipation("Access denied"),
            RoomLevelGate("Access denied. Complete the previous level to unlock this group."),
        ],
        (R.ROOM, A.POST): [
            OnboardingRequired("Complete onboarding to access the community"),
            RoomParticipation("Access denied"),
            RoomLevelGate("Access denied. Complete the previous level to unlock this group."),
        ],
        (R.MESSAGE, A.DELETE): [Ownership("You can only delete your own messages")],

        # Classes
        (R.CLASS, A.CREATE): [RoleAllowList(STAFF_ROLES, "Instructor or admin access required")],
        (R.CLASS, A.UPDATE): [
            RoleAllowList(STAFF_ROLES, "Instructor or admin access required"),
            Ownership("You can only edit your own classes", bypass_roles=ADMIN_ROLES),
        ],
        (R.CLASS, A.DELETE): [
            RoleAllowList(STAFF_ROLES, "Instructor or admin access required"),
            Ownership("You can only delete your own classes", bypass_roles=ADMIN_ROLES),
        ],

        # Reminders
        (R.REMINDER, A.CREATE): [anyone],
        (R.REMINDER, A.READ): [Ownership("Reminder not found or unauthorized")],
        (R.REMINDER, A.UPDATE): [Ownership("Reminder not found or unauthorized")],
        (R.REMINDER, A.DELETE): [Ownership("Reminder not found or unauthorized")],

        # Certificates
        (R.CERTIFICATE, A.READ): [Ownership("Not authorized", bypass_roles=STAFF_ROLES)],
        (R.CERTIFICATE, A.CREATE): [RoleAllowList(ADMIN_ROLES, "Admin only")],
        (R.CERTIFICATE, A.UPDATE): [RoleAllowList(ADMIN_ROLES, "Admin only")],
        (R.CERTIFICATE, A.DELETE): [RoleAllowList(ADMIN_ROLES, "Admin only")],
    }


def default_policy(super_admin_email: Optional[str] = None) -> AuthorizationPolicy:
    return AuthorizationPolicy(default_rules(super_admin_email))
