"""Account lifecycle: registration, login, approval, role changes, deletion.

Students are approved at registration and receive a credential straight
away. Instructors and admins start pending and cannot log in until an
admin approves them. Every administrative action runs through the
authorization policy before the store is touched.
"""
import uuid
from typing import List, Optional

import bcrypt

from app.core.errors import Conflict, Forbidden, InvalidLogin, NotFound
from app.core.learning_level import next_level, resolve_learning_level
from app.core.logging import get_logger
from app.core.policy import AuthorizationPolicy
from app.core.tokens import TokenCodec
from app.domain.principal import (
    ASSIGNABLE_ROLES,
    SIGNUP_ROLES,
    Account,
    AccountStatus,
    LearningLevel,
    Principal,
    Role,
    SignupRequest,
    StudentDetails,
    TokenClaims,
    TokenResponse,
    UserProfile,
    is_super_admin,
)
from app.domain.resources import Action, ResourceType, UserResource
from app.infrastructure.redis import SessionRegistry
from app.infrastructure.store import DocumentStore, utcnow

logger = get_logger(__name__)

BCRYPT_ROUNDS = 10
# bcrypt only reads the first 72 bytes of a password
BCRYPT_MAX_BYTES = 72

PENDING_MESSAGE = "Your registration is pending approval. You will be notified once approved."
PENDING_LOGIN_MESSAGE = (
    "Your registration is pending approval. "
    "Please wait for Super Admin approval before accessing your dashboard."
)
REJECTED_LOGIN_MESSAGE = "Your registration has been rejected. Please contact support for more information."


def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    secret = password.encode("utf-8")[:BCRYPT_MAX_BYTES]
    return bcrypt.hashpw(secret, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    secret = password.encode("utf-8")[:BCRYPT_MAX_BYTES]
    try:
        return bcrypt.checkpw(secret, password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


def to_profile(account: Account) -> UserProfile:
    return UserProfile(
        id=account.id,
        email=account.email,
        name=account.name,
        role=account.role,
        status=account.status,
    )


def as_target(account: Account) -> UserResource:
    """Snapshot of an account as the target of an administrative action."""
    return UserResource(
        id=account.id,
        email=account.email,
        role=account.role,
        created_at=account.created_at,
        updated_at=account.updated_at,
    )


class AccountService:
    """Registration, authentication and administration of accounts."""

    def __init__(
        self,
        store: DocumentStore,
        codec: TokenCodec,
        policy: AuthorizationPolicy,
        super_admin_email: Optional[str] = None,
        registry: Optional[SessionRegistry] = None,
        bcrypt_rounds: int = BCRYPT_ROUNDS,
    ):
        self.store = store
        self.codec = codec
        self.policy = policy
        self.super_admin_email = super_admin_email
        self.registry = registry
        self.bcrypt_rounds = bcrypt_rounds

    def _is_super_admin(self, account: Account) -> bool:
        return is_super_admin(account.role, account.email, self.super_admin_email)

    def _token_response(self, account: Account, role: Role, message: Optional[str] = None) -> TokenResponse:
        token = self.codec.issue(TokenClaims(sub=account.id, email=account.email, role=role))
        profile = to_profile(account).model_copy(update={"role": role})
        return TokenResponse(
            access_token=token,
            expires_in=int(self.codec.ttl.total_seconds()),
            user=profile,
            message=message,
        )

    def _get_account(self, user_id: str) -> Account:
        account = self.store.users.get(user_id)
        if account is None:
            raise NotFound("User not found")
        return account

    def register(self, request: SignupRequest) -> TokenResponse:
        """Create an account. Returns a credential only if it is approved.

        Raises:
            Conflict: If the role is not allowed at signup or the email is taken
            ConfigurationError: If an approved account could not be given a
                credential; nothing is stored in that case
        """
        if request.role not in SIGNUP_ROLES:
            raise Conflict("Invalid role")
        if self.store.find_user_by_email(request.email) is not None:
            raise Conflict("User already exists")

        status = AccountStatus.APPROVED if request.role == Role.STUDENT else AccountStatus.PENDING
        if status == AccountStatus.APPROVED:
            self.codec.ensure_configured()

        account = self.store.users.insert(Account(
            id=uuid.uuid4().hex,
            email=request.email,
            name=request.name,
            role=request.role,
            status=status,
            password_hash=hash_password(request.password, self.bcrypt_rounds),
        ))
        logger.info(
            f"Account registered with status {status.value}",
            extra={"principal_id": account.id, "role": account.role.value},
        )

        if status != AccountStatus.APPROVED:
            return TokenResponse(user=to_profile(account), message=PENDING_MESSAGE)
        return self._token_response(account, account.role, message="Registration successful!")

    def authenticate(self, email: str, password: str) -> TokenResponse:
        """Check credentials and approval status, then issue a credential.

        Raises:
            InvalidLogin: Unknown email or wrong password (indistinguishable)
            Forbidden: Account pending or rejected
        """
        account = self.store.find_user_by_email(email)
        if account is None or not verify_password(password, account.password_hash):
            logger.warning("Failed login attempt")
            raise InvalidLogin()

        super_admin = self._is_super_admin(account)
        if not super_admin and account.role in (Role.INSTRUCTOR, Role.ADMIN):
            if account.status == AccountStatus.PENDING:
                raise Forbidden(PENDING_LOGIN_MESSAGE)
            if account.status == AccountStatus.REJECTED:
                raise Forbidden(REJECTED_LOGIN_MESSAGE)

        role = Role.SUPERADMIN if super_admin else account.role
        logger.info("User authenticated", extra={"principal_id": account.id, "role": role.value})
        return self._token_response(account, role)

    def load_principal(self, principal: Principal) -> Principal:
        """Return the stored view of ``principal`` (learning level, onboarding).

        The role stays the one carried by the credential.
        """
        account = self._get_account(principal.id)
        return account.to_principal().model_copy(update={"role": principal.role})

    def complete_onboarding(self, principal: Principal, trading_level: LearningLevel) -> Principal:
        """Record the student's self-reported level from onboarding."""
        if principal.role != Role.STUDENT:
            raise Forbidden("Onboarding is only available for students")
        account = self._get_account(principal.id)
        updated = self.store.users.update(
            account.id,
            student_details=StudentDetails(trading_level=trading_level, onboarding_completed=True),
        )
        return updated.to_principal()

    def advance_learning_level(self, principal: Principal, user_id: str) -> Principal:
        """Unlock the next community level for a student who finished theirs.

        Raises:
            Forbidden: If the actor is not staff or targets themselves
            Conflict: If the target is not a student or is already advanced
        """
        account = self._get_account(user_id)
        self.policy.authorize(principal, Action.UPDATE, as_target(account))
        if account.role != Role.STUDENT:
            raise Conflict("Only students have a learning level")

        current = resolve_learning_level(account)
        level = next_level(current)
        if level is None:
            raise Conflict(f"Student is already at the {current.value} level")

        updated = self.store.users.update(account.id, learning_level=level)
        logger.info(
            f"Learning level advanced to {level.value}",
            extra={"principal_id": principal.id, "resource_id": account.id},
        )
        return updated.to_principal()

    def get_profile(self, principal: Principal, user_id: Optional[str] = None) -> UserProfile:
        account = self._get_account(user_id or principal.id)
        self.policy.authorize(principal, Action.READ, as_target(account))
        return to_profile(account).model_copy(
            update={"role": Role.SUPERADMIN if self._is_super_admin(account) else account.role}
        )

    def list_users(self, principal: Principal) -> List[UserProfile]:
        self.policy.authorize(principal, Action.LIST, ResourceType.USER)
        return [to_profile(account) for account in self.store.users.find()]

    def list_pending(self, principal: Principal) -> List[UserProfile]:
        self.policy.authorize(principal, Action.LIST, ResourceType.USER)
        pending = self.store.users.find(
            lambda account: account.status == AccountStatus.PENDING
            and account.role in (Role.INSTRUCTOR, Role.ADMIN)
        )
        return [to_profile(account) for account in pending]

    def review_registration(self, principal: Principal, user_id: str, approve: bool) -> UserProfile:
        account = self._get_account(user_id)
        self.policy.authorize(principal, Action.APPROVE, as_target(account))
        if account.status != AccountStatus.PENDING:
            raise Conflict("User is not pending approval")

        status = AccountStatus.APPROVED if approve else AccountStatus.REJECTED
        updated = self.store.users.update(
            account.id,
            status=status,
            reviewed_by=principal.email,
            reviewed_at=utcnow(),
        )
        if not approve:
            self._revoke(account.id)
        logger.info(
            f"Registration {status.value}",
            extra={"principal_id": principal.id, "resource_id": account.id},
        )
        return to_profile(updated)

    def change_role(self, principal: Principal, user_id: str, role: Role) -> UserProfile:
        """Administrative promotion or demotion.

        Outstanding credentials keep the old role until they expire, unless
        the session registry is enabled.
        """
        if role not in ASSIGNABLE_ROLES:
            raise Conflict("Invalid role. Must be admin, instructor, or student")
        account = self._get_account(user_id)
        self.policy.authorize(principal, Action.CHANGE_ROLE, as_target(account))

        updated = self.store.users.update(account.id, role=role)
        self._revoke(account.id)
        logger.info(
            f"Role changed to {role.value}",
            extra={"principal_id": principal.id, "resource_id": account.id},
        )
        return to_profile(updated)

    def delete_account(self, principal: Principal, user_id: str) -> None:
        account = self._get_account(user_id)
        self.policy.authorize(principal, Action.DELETE, as_target(account))

        self.store.users.delete(account.id)
        self._revoke(account.id)
        logger.info("Account deleted", extra={"principal_id": principal.id, "resource_id": account.id})

    def _revoke(self, user_id: str) -> None:
        if self.registry is not None:
            self.registry.revoke_all(user_id)
