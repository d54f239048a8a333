"""FastAPI routes for accounts, demo trading tasks and the community.

Every handler resolves the caller with ``get_current_principal`` and
delegates to a service, which runs the authorization policy before any
write. Domain errors propagate to the exception handlers in ``main``.
"""
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from app.api.dependencies import get_account_service, get_community_service, get_task_service
from app.core.auth import get_current_principal, require_role
from app.core.logging import LogTimer, get_logger
from app.domain.principal import (
    ADMIN_ROLES,
    LearningLevel,
    LoginRequest,
    Principal,
    Role,
    SignupRequest,
    TokenResponse,
    UserProfile,
)
from app.services.accounts import AccountService
from app.services.community import CommunityService
from app.services.tasks import TaskService

logger = get_logger(__name__)
router = APIRouter()

require_admin = require_role(*ADMIN_ROLES)


class ApprovalRequest(BaseModel):
    user_id: str = Field(alias="userId")
    action: Literal["approve", "reject"]

    class Config:
        populate_by_name = True


class RoleChangeRequest(BaseModel):
    role: Role


class OnboardingRequest(BaseModel):
    trading_level: LearningLevel = Field(alias="tradingLevel")

    class Config:
        populate_by_name = True


class TaskCreateRequest(BaseModel):
    title: str
    description: str
    instructions: str = ""
    assigned_to: Optional[str] = Field(default=None, alias="assignedTo")
    due_date: Optional[datetime] = Field(default=None, alias="dueDate")

    class Config:
        populate_by_name = True


class SubmitRequest(BaseModel):
    reasoning: str
    screenshot_urls: List[str] = Field(default_factory=list, alias="screenshotUrls")

    class Config:
        populate_by_name = True


class ReviewRequest(BaseModel):
    grade: Optional[float] = None
    feedback: Optional[str] = None


class MessageRequest(BaseModel):
    content: str


# -----------------
# AUTHENTICATION
# -----------------

@router.post("/auth/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def signup(req: SignupRequest, accounts: AccountService = Depends(get_account_service)):
    """Register an account. Only approved (student) accounts receive a token."""
    return accounts.register(req)


@router.post("/auth/login", response_model=TokenResponse)
async def login(req: LoginRequest, accounts: AccountService = Depends(get_account_service)):
    """Authenticate with email and password and return a bearer token.

    Example:
        POST /auth/login
        {"email": "student@example.com", "password": "password123"}
    """
    with LogTimer(logger, "user_authentication"):
        return accounts.authenticate(req.email, req.password)


@router.get("/auth/me", response_model=UserProfile)
async def get_current_user_info(
    principal: Principal = Depends(get_current_principal),
    accounts: AccountService = Depends(get_account_service),
):
    return accounts.get_profile(principal)


@router.post("/student/onboarding/complete")
async def complete_onboarding(
    req: OnboardingRequest,
    principal: Principal = Depends(get_current_principal),
    accounts: AccountService = Depends(get_account_service),
):
    updated = accounts.complete_onboarding(principal, req.trading_level)
    return {"success": True, "tradingLevel": updated.student_details.trading_level}


@router.post("/instructor/students/{user_id}/advance-level")
async def advance_learning_level(
    user_id: str,
    principal: Principal = Depends(get_current_principal),
    accounts: AccountService = Depends(get_account_service),
):
    """Unlock the next community room for a student."""
    updated = accounts.advance_learning_level(principal, user_id)
    return {"success": True, "learningLevel": updated.learning_level}


# -----------------
# ADMINISTRATION
# -----------------

@router.get("/admin/users", response_model=List[UserProfile])
async def list_users(
    principal: Principal = Depends(require_admin),
    accounts: AccountService = Depends(get_account_service),
):
    return accounts.list_users(principal)


@router.get("/admin/approvals", response_model=List[UserProfile])
async def list_pending_registrations(
    principal: Principal = Depends(require_admin),
    accounts: AccountService = Depends(get_account_service),
):
    return accounts.list_pending(principal)


@router.post("/admin/approvals")
async def review_registration(
    req: ApprovalRequest,
    principal: Principal = Depends(require_admin),
    accounts: AccountService = Depends(get_account_service),
):
    profile = accounts.review_registration(principal, req.user_id, approve=req.action == "approve")
    verb = "approved" if req.action == "approve" else "rejected"
    return {"success": True, "message": f"User {verb} successfully", "user": profile}


@router.put("/admin/users/{user_id}")
async def change_user_role(
    user_id: str,
    req: RoleChangeRequest,
    principal: Principal = Depends(require_admin),
    accounts: AccountService = Depends(get_account_service),
):
    profile = accounts.change_role(principal, user_id, req.role)
    return {"success": True, "message": f"User role updated to {req.role.value} successfully", "user": profile}


@router.delete("/admin/users/{user_id}")
async def delete_user(
    user_id: str,
    principal: Principal = Depends(require_admin),
    accounts: AccountService = Depends(get_account_service),
):
    accounts.delete_account(principal, user_id)
    return {"success": True, "message": "User deleted successfully"}


# -----------------
# DEMO TRADING TASKS
# -----------------

@router.get("/demo-trading/tasks")
async def list_tasks(
    principal: Principal = Depends(get_current_principal),
    tasks: TaskService = Depends(get_task_service),
):
    return tasks.list_tasks(principal)


@router.post("/demo-trading/tasks", status_code=status.HTTP_201_CREATED)
async def create_task(
    req: TaskCreateRequest,
    principal: Principal = Depends(get_current_principal),
    tasks: TaskService = Depends(get_task_service),
):
    return tasks.create_task(
        principal,
        title=req.title,
        description=req.description,
        instructions=req.instructions,
        assigned_to=req.assigned_to,
        due_date=req.due_date,
    )


@router.delete("/demo-trading/tasks/{task_id}")
async def delete_task(
    task_id: str,
    principal: Principal = Depends(get_current_principal),
    tasks: TaskService = Depends(get_task_service),
):
    tasks.delete_task(principal, task_id)
    return {"success": True, "message": "Task deleted successfully"}


@router.post("/demo-trading/tasks/{task_id}/complete")
async def complete_task(
    task_id: str,
    principal: Principal = Depends(get_current_principal),
    tasks: TaskService = Depends(get_task_service),
):
    tasks.complete_task(principal, task_id)
    return {"success": True, "message": "Task marked as completed"}


@router.post("/demo-trading/tasks/{task_id}/submit")
async def submit_task(
    task_id: str,
    req: SubmitRequest,
    principal: Principal = Depends(get_current_principal),
    tasks: TaskService = Depends(get_task_service),
):
    submission, created = tasks.submit(principal, task_id, req.reasoning, req.screenshot_urls)
    message = "Task submitted successfully" if created else "Task submission updated successfully"
    return {"success": True, "message": message, "submissionId": submission.id}


@router.get("/demo-trading/tasks/{task_id}/submissions")
async def list_task_submissions(
    task_id: str,
    principal: Principal = Depends(get_current_principal),
    tasks: TaskService = Depends(get_task_service),
):
    return tasks.list_submissions(principal, task_id)


@router.get("/demo-trading/submissions")
async def list_submissions(
    principal: Principal = Depends(get_current_principal),
    tasks: TaskService = Depends(get_task_service),
):
    return tasks.list_submissions(principal)


@router.delete("/demo-trading/submissions/{submission_id}")
async def delete_submission(
    submission_id: str,
    principal: Principal = Depends(get_current_principal),
    tasks: TaskService = Depends(get_task_service),
):
    tasks.delete_submission(principal, submission_id)
    return {"success": True, "message": "Submission deleted successfully"}


@router.put("/demo-submissions/{submission_id}/review")
async def review_submission(
    submission_id: str,
    req: ReviewRequest,
    principal: Principal = Depends(get_current_principal),
    tasks: TaskService = Depends(get_task_service),
):
    reviewed = tasks.review(principal, submission_id, grade=req.grade, feedback=req.feedback)
    return {"success": True, "message": "Submission reviewed successfully", "submission": reviewed}


# -----------------
# COMMUNITY
# -----------------

@router.get("/community/rooms")
async def list_rooms(
    principal: Principal = Depends(get_current_principal),
    accounts: AccountService = Depends(get_account_service),
    community: CommunityService = Depends(get_community_service),
):
    return community.list_rooms(accounts.load_principal(principal))


@router.get("/community/rooms/{room_id}/messages")
async def list_messages(
    room_id: str,
    principal: Principal = Depends(get_current_principal),
    accounts: AccountService = Depends(get_account_service),
    community: CommunityService = Depends(get_community_service),
):
    return community.list_messages(accounts.load_principal(principal), room_id)


@router.post("/community/rooms/{room_id}/messages", status_code=status.HTTP_201_CREATED)
async def post_message(
    room_id: str,
    req: MessageRequest,
    principal: Principal = Depends(get_current_principal),
    accounts: AccountService = Depends(get_account_service),
    community: CommunityService = Depends(get_community_service),
):
    return community.post_message(accounts.load_principal(principal), room_id, req.content)


@router.delete("/community/messages/{message_id}")
async def delete_message(
    message_id: str,
    principal: Principal = Depends(get_current_principal),
    community: CommunityService = Depends(get_community_service),
):
    community.delete_message(principal, message_id)
    return {"success": True, "messageId": message_id}
