"""Demo trading tasks and their submissions.

Each operation loads the current snapshot, asks the policy, and only then
writes. A student has at most one submission per task; resubmitting
replaces it until it has been reviewed.
"""
import uuid
from datetime import datetime
from typing import List, Optional, Tuple

from app.core.errors import Conflict, NotFound
from app.core.logging import get_logger
from app.core.policy import AuthorizationPolicy
from app.domain.principal import Principal
from app.domain.resources import Action, Submission, Task
from app.infrastructure.store import DocumentStore, utcnow
from app.services.notifications import Publisher, NullPublisher

logger = get_logger(__name__)

MIN_GRADE = 0
MAX_GRADE = 100


class TaskService:
    """Task assignment, completion, submission and review."""

    def __init__(
        self,
        store: DocumentStore,
        policy: AuthorizationPolicy,
        publisher: Optional[Publisher] = None,
    ):
        self.store = store
        self.policy = policy
        self.publisher = publisher or NullPublisher()

    def _get_task(self, task_id: str) -> Task:
        task = self.store.tasks.get(task_id)
        if task is None:
            raise NotFound("Task not found")
        return task

    def _get_submission(self, submission_id: str) -> Submission:
        submission = self.store.submissions.get(submission_id)
        if submission is None:
            raise NotFound("Submission not found")
        return submission

    def create_task(
        self,
        principal: Principal,
        title: str,
        description: str,
        instructions: str = "",
        assigned_to: Optional[str] = None,
        due_date: Optional[datetime] = None,
    ) -> Task:
        if not title or not description:
            raise Conflict("Title and description are required")

        draft = Task(
            id=uuid.uuid4().hex,
            title=title,
            description=description,
            instructions=instructions or "",
            assigned_by=principal.id,
            assigned_to=assigned_to or None,
            due_date=due_date,
        )
        self.policy.authorize(principal, Action.CREATE, draft)
        task = self.store.tasks.insert(draft)

        event = {"type": "task_created", "taskId": task.id, "title": task.title}
        if task.assigned_to:
            self.publisher.publish(f"user:{task.assigned_to}", "notification", event)
        else:
            self.publisher.publish("role:student", "notification", event)
        return task

    def list_tasks(self, principal: Principal) -> List[Task]:
        """Tasks visible to ``principal``: all for staff, assigned or general for students."""
        return [
            task for task in self.store.tasks.find()
            if self.policy.is_allowed(principal, Action.READ, task)
        ]

    def complete_task(self, principal: Principal, task_id: str) -> Task:
        task = self._get_task(task_id)
        self.policy.authorize(principal, Action.COMPLETE, task)
        return self.store.tasks.update(
            task.id,
            completed=True,
            completed_at=utcnow(),
            completed_by=principal.id,
        )

    def delete_task(self, principal: Principal, task_id: str) -> None:
        task = self._get_task(task_id)
        self.policy.authorize(principal, Action.DELETE, task)
        self.store.tasks.delete(task.id)

    def submit(
        self,
        principal: Principal,
        task_id: str,
        reasoning: str,
        screenshot_urls: Optional[List[str]] = None,
    ) -> Tuple[Submission, bool]:
        """Create or replace the student's submission for a task.

        Returns:
            The stored submission and whether it was newly created
        """
        if not reasoning or not reasoning.strip():
            raise Conflict("Reasoning/analysis is required")

        task = self._get_task(task_id)
        self.policy.authorize(principal, Action.SUBMIT, task)

        existing = self.store.submissions.find_one(
            lambda s: s.task_id == task.id and s.student_id == principal.id
        )
        urls = list(screenshot_urls or [])
        now = utcnow()

        if existing is not None:
            self.policy.authorize(principal, Action.UPDATE, existing)
            updated = self.store.submissions.update(
                existing.id,
                reasoning=reasoning.strip(),
                screenshot_urls=urls,
                submitted_at=now,
            )
            return updated, False

        draft = Submission(
            id=uuid.uuid4().hex,
            task_id=task.id,
            student_id=principal.id,
            task_owner_id=task.assigned_by,
            reasoning=reasoning.strip(),
            screenshot_urls=urls,
            submitted_at=now,
        )
        self.policy.authorize(principal, Action.CREATE, draft)
        submission = self.store.submissions.insert(draft)

        if task.assigned_by:
            self.publisher.publish(
                f"user:{task.assigned_by}",
                "notification",
                {"type": "task_submission", "taskId": task.id, "submissionId": submission.id},
            )
        return submission, True

    def review(
        self,
        principal: Principal,
        submission_id: str,
        grade: Optional[float] = None,
        feedback: Optional[str] = None,
    ) -> Submission:
        """Grade a submission and/or attach feedback. Re-grading is allowed."""
        if grade is None and not feedback:
            raise Conflict("Grade or feedback is required")
        if grade is not None and not MIN_GRADE <= grade <= MAX_GRADE:
            raise Conflict(f"Grade must be between {MIN_GRADE} and {MAX_GRADE}")

        submission = self._get_submission(submission_id)
        if submission.task_id and self.store.tasks.get(submission.task_id) is None:
            raise NotFound("Task not found")
        self.policy.authorize(principal, Action.REVIEW, submission)

        changes = {"reviewed_at": utcnow()}
        if grade is not None:
            changes["grade"] = grade
        if feedback is not None:
            changes["feedback"] = feedback
        reviewed = self.store.submissions.update(submission.id, **changes)

        self.publisher.publish(
            f"user:{submission.student_id}",
            "notification",
            {"type": "task_feedback", "taskId": submission.task_id, "grade": reviewed.grade},
        )
        logger.info(
            "Submission reviewed",
            extra={"principal_id": principal.id, "resource_id": submission.id},
        )
        return reviewed

    def delete_submission(self, principal: Principal, submission_id: str) -> None:
        submission = self._get_submission(submission_id)
        self.policy.authorize(principal, Action.DELETE, submission)
        self.store.submissions.delete(submission.id)
        logger.info(
            "Submission deleted",
            extra={"principal_id": principal.id, "resource_id": submission.id},
        )

    def list_submissions(self, principal: Principal, task_id: Optional[str] = None) -> List[Submission]:
        """Submissions for one task (task owner or admins), or all visible to staff."""
        if task_id is not None:
            task = self._get_task(task_id)
            self.policy.authorize(principal, Action.LIST_SUBMISSIONS, task)
            return self.store.submissions.find(lambda s: s.task_id == task.id)

        if principal.is_student:
            return self.store.submissions.find(lambda s: s.student_id == principal.id)
        return [
            s for s in self.store.submissions.find()
            if self.policy.is_allowed(principal, Action.REVIEW, s)
        ]
