"""Domain models for gated resources.

Each resource is a snapshot of the persisted record as loaded immediately
before an authorization check. ``resource_type`` tags the variant so the
policy can dispatch on ``(resource_type, action)``.
"""
from datetime import datetime
from enum import Enum
from typing import ClassVar, List, Literal, Optional, Union
from pydantic import BaseModel, Field

from app.domain.principal import LearningLevel, Role


class ResourceType(str, Enum):
    USER = "user"
    COURSE = "course"
    LESSON = "lesson"
    TASK = "task"
    SUBMISSION = "submission"
    ROOM = "room"
    MESSAGE = "message"
    CLASS = "class"
    REMINDER = "reminder"
    CERTIFICATE = "certificate"


class Action(str, Enum):
    READ = "read"
    LIST = "list"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    APPROVE = "approve"
    CHANGE_ROLE = "change_role"
    COMPLETE = "complete"
    SUBMIT = "submit"
    REVIEW = "review"
    LIST_SUBMISSIONS = "list_submissions"
    POST = "post"


class ResourceSnapshot(BaseModel):
    """Fields common to every resource variant.

    ``owner_field`` names the attribute holding the creator reference.
    """
    owner_field: ClassVar[str] = "created_by"

    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        populate_by_name = True

    @property
    def owner_id(self) -> Optional[str]:
        return getattr(self, self.owner_field, None)


class UserResource(ResourceSnapshot):
    """An account targeted by an administrative action."""
    owner_field: ClassVar[str] = "id"

    resource_type: Literal[ResourceType.USER] = ResourceType.USER
    email: Optional[str] = None
    role: Role


class Course(ResourceSnapshot):
    owner_field: ClassVar[str] = "instructor_id"

    resource_type: Literal[ResourceType.COURSE] = ResourceType.COURSE
    title: Optional[str] = None
    instructor_id: Optional[str] = Field(default=None, alias="instructorId")
    difficulty: LearningLevel = LearningLevel.BEGINNER


class Lesson(ResourceSnapshot):
    """A lesson. ``prerequisite_met`` is resolved by the caller from progress."""
    resource_type: Literal[ResourceType.LESSON] = ResourceType.LESSON
    course_id: Optional[str] = Field(default=None, alias="courseId")
    created_by: Optional[str] = Field(default=None, alias="createdBy")
    required_level: Optional[LearningLevel] = Field(default=None, alias="requiredLevel")
    course_level: LearningLevel = Field(default=LearningLevel.BEGINNER, alias="courseLevel")
    prerequisite_met: bool = Field(default=False, alias="prerequisiteMet")


class Task(ResourceSnapshot):
    """A demo trading task. ``assigned_to`` of None means every student."""
    owner_field: ClassVar[str] = "assigned_by"

    resource_type: Literal[ResourceType.TASK] = ResourceType.TASK
    title: Optional[str] = None
    description: Optional[str] = None
    instructions: str = ""
    assigned_by: Optional[str] = Field(default=None, alias="assignedBy")
    assigned_to: Optional[str] = Field(default=None, alias="assignedTo")
    due_date: Optional[datetime] = Field(default=None, alias="dueDate")
    completed: bool = False
    completed_at: Optional[datetime] = Field(default=None, alias="completedAt")
    completed_by: Optional[str] = Field(default=None, alias="completedBy")


class Submission(ResourceSnapshot):
    """A student's answer to a task.

    Reviewed once ``reviewed_at`` is set or a grade has been given.
    """
    owner_field: ClassVar[str] = "student_id"

    resource_type: Literal[ResourceType.SUBMISSION] = ResourceType.SUBMISSION
    task_id: Optional[str] = Field(default=None, alias="taskId")
    student_id: Optional[str] = Field(default=None, alias="studentId")
    task_owner_id: Optional[str] = Field(default=None, alias="instructorId")
    reasoning: str = ""
    screenshot_urls: List[str] = Field(default_factory=list, alias="screenshotUrls")
    grade: Optional[float] = None
    feedback: Optional[str] = None
    reviewed_at: Optional[datetime] = Field(default=None, alias="reviewedAt")
    submitted_at: Optional[datetime] = Field(default=None, alias="submittedAt")

    @property
    def is_reviewed(self) -> bool:
        return self.reviewed_at is not None or self.grade is not None


class RoomKind(str, Enum):
    GLOBAL = "global"
    DIRECT = "direct"


class Room(ResourceSnapshot):
    """A community room. Global rooms are named after a learning level."""
    resource_type: Literal[ResourceType.ROOM] = ResourceType.ROOM
    name: str
    kind: RoomKind = RoomKind.GLOBAL
    description: Optional[str] = None
    created_by: Optional[str] = Field(default=None, alias="createdBy")
    participants: List[str] = Field(default_factory=list)


class Message(ResourceSnapshot):
    owner_field: ClassVar[str] = "sender_id"

    resource_type: Literal[ResourceType.MESSAGE] = ResourceType.MESSAGE
    room_id: str = Field(alias="roomId")
    sender_id: str = Field(alias="senderId")
    content: str = ""
    seen_by: List[str] = Field(default_factory=list, alias="seenBy")


class ClassEvent(ResourceSnapshot):
    owner_field: ClassVar[str] = "instructor_id"

    resource_type: Literal[ResourceType.CLASS] = ResourceType.CLASS
    title: Optional[str] = None
    instructor_id: Optional[str] = Field(default=None, alias="instructorId")
    scheduled_at: Optional[datetime] = Field(default=None, alias="scheduledAt")


class Reminder(ResourceSnapshot):
    owner_field: ClassVar[str] = "user_id"

    resource_type: Literal[ResourceType.REMINDER] = ResourceType.REMINDER
    user_id: Optional[str] = Field(default=None, alias="userId")
    title: Optional[str] = None
    scheduled_at: Optional[datetime] = Field(default=None, alias="scheduledAt")


class Certificate(ResourceSnapshot):
    owner_field: ClassVar[str] = "user_id"

    resource_type: Literal[ResourceType.CERTIFICATE] = ResourceType.CERTIFICATE
    user_id: Optional[str] = Field(default=None, alias="userId")
    course_id: Optional[str] = Field(default=None, alias="courseId")


Resource = Union[
    UserResource, Course, Lesson, Task, Submission, Room, Message,
    ClassEvent, Reminder, Certificate,
]
