"""Unit tests for demo trading tasks and the community."""
import pytest

from app.core.errors import Conflict, Forbidden, NotFound
from app.domain.principal import LearningLevel, StudentDetails


@pytest.fixture
def task(task_service, instructor):
    return task_service.create_task(instructor, title="Trade EURUSD", description="Open one demo position")


def room_named(store, name):
    return store.rooms.find_one(lambda room: room.name == name)


class TestTasks:
    """Test task creation, visibility and completion."""

    def test_create_publishes_to_students(self, task, publisher):
        channel, event, payload = publisher.events[-1]

        assert channel == "role:student"
        assert event == "notification"
        assert payload["taskId"] == task.id

    def test_assigned_task_notifies_assignee(self, task_service, instructor, student, publisher):
        task = task_service.create_task(instructor, "Journal", "Write it up", assigned_to=student.id)

        assert publisher.events[-1][0] == f"user:{student.id}"
        assert task.assigned_by == instructor.id

    def test_student_cannot_create(self, task_service, student):
        with pytest.raises(Forbidden):
            task_service.create_task(student, "Mine", "All mine")

    def test_title_required(self, task_service, instructor):
        with pytest.raises(Conflict):
            task_service.create_task(instructor, "", "No title")

    def test_list_tasks(self, task_service, instructor, student, other_student, task):
        private = task_service.create_task(instructor, "Private", "Only for B", assigned_to=other_student.id)

        assert {t.id for t in task_service.list_tasks(student)} == {task.id}
        assert {t.id for t in task_service.list_tasks(other_student)} == {task.id, private.id}
        assert {t.id for t in task_service.list_tasks(instructor)} == {task.id, private.id}

    def test_complete_once(self, task_service, student, task):
        done = task_service.complete_task(student, task.id)

        assert done.completed
        assert done.completed_by == student.id
        with pytest.raises(Forbidden) as exc_info:
            task_service.complete_task(student, task.id)
        assert exc_info.value.reason == "Task is already completed"

    def test_unknown_task(self, task_service, student):
        with pytest.raises(NotFound):
            task_service.complete_task(student, "missing")

    def test_only_owner_deletes(self, task_service, other_instructor, instructor, task, store):
        with pytest.raises(Forbidden):
            task_service.delete_task(other_instructor, task.id)

        task_service.delete_task(instructor, task.id)
        assert store.tasks.get(task.id) is None


class TestSubmissions:
    """Test the submit, review and delete lifecycle."""

    def test_submit(self, task_service, student, instructor, task, publisher):
        submission, created = task_service.submit(student, task.id, "Bought the breakout", ["https://img/1.png"])

        assert created
        assert submission.student_id == student.id
        assert submission.task_owner_id == instructor.id
        assert publisher.events[-1][0] == f"user:{instructor.id}"

    def test_resubmit_replaces(self, task_service, student, task, store):
        first, _ = task_service.submit(student, task.id, "First attempt")
        second, created = task_service.submit(student, task.id, "Second attempt")

        assert not created
        assert second.id == first.id
        assert store.submissions.get(first.id).reasoning == "Second attempt"
        assert len(store.submissions) == 1

    def test_reasoning_required(self, task_service, student, task):
        with pytest.raises(Conflict):
            task_service.submit(student, task.id, "   ")

    def test_instructor_cannot_submit(self, task_service, instructor, task):
        with pytest.raises(Forbidden):
            task_service.submit(instructor, task.id, "Instructor answer")

    def test_cannot_delete_after_grading(self, task_service, student, instructor, task, store):
        """Test that a student loses delete rights once a grade is given."""
        submission, _ = task_service.submit(student, task.id, "Sold the top")
        task_service.review(instructor, submission.id, grade=85)

        with pytest.raises(Forbidden) as exc_info:
            task_service.delete_submission(student, submission.id)

        assert exc_info.value.reason == "Cannot delete a submission that has been reviewed."
        assert store.submissions.get(submission.id) is not None

    def test_cannot_resubmit_after_feedback(self, task_service, student, instructor, task):
        submission, _ = task_service.submit(student, task.id, "Sold the top")
        task_service.review(instructor, submission.id, feedback="Watch the spread")

        with pytest.raises(Forbidden) as exc_info:
            task_service.submit(student, task.id, "Changed my mind")

        assert exc_info.value.reason == "Cannot modify a submission that has been reviewed."

    def test_delete_before_review(self, task_service, student, task, store):
        submission, _ = task_service.submit(student, task.id, "Sold the top")
        task_service.delete_submission(student, submission.id)

        assert store.submissions.get(submission.id) is None

    def test_review_notifies_student(self, task_service, student, instructor, task, publisher):
        submission, _ = task_service.submit(student, task.id, "Sold the top")
        reviewed = task_service.review(instructor, submission.id, grade=72.5, feedback="Solid")

        assert reviewed.grade == 72.5
        assert reviewed.reviewed_at is not None
        channel, _, payload = publisher.events[-1]
        assert channel == f"user:{student.id}"
        assert payload["grade"] == 72.5

    def test_regrade(self, task_service, student, instructor, task):
        submission, _ = task_service.submit(student, task.id, "Sold the top")
        task_service.review(instructor, submission.id, grade=60)

        assert task_service.review(instructor, submission.id, grade=90).grade == 90

    @pytest.mark.parametrize("grade", [-1, 100.5])
    def test_grade_range(self, task_service, student, instructor, task, grade):
        submission, _ = task_service.submit(student, task.id, "Sold the top")

        with pytest.raises(Conflict):
            task_service.review(instructor, submission.id, grade=grade)

    def test_review_requires_content(self, task_service, student, instructor, task):
        submission, _ = task_service.submit(student, task.id, "Sold the top")

        with pytest.raises(Conflict):
            task_service.review(instructor, submission.id)

    def test_other_instructor_cannot_review(self, task_service, student, other_instructor, admin, task):
        submission, _ = task_service.submit(student, task.id, "Sold the top")

        with pytest.raises(Forbidden):
            task_service.review(other_instructor, submission.id, grade=50)
        assert task_service.review(admin, submission.id, grade=50).grade == 50

    def test_list_submissions(self, task_service, student, other_student, instructor, other_instructor, task):
        mine, _ = task_service.submit(student, task.id, "A")
        theirs, _ = task_service.submit(other_student, task.id, "B")

        assert [s.id for s in task_service.list_submissions(student)] == [mine.id]
        assert {s.id for s in task_service.list_submissions(instructor)} == {mine.id, theirs.id}
        assert task_service.list_submissions(other_instructor) == []
        assert len(task_service.list_submissions(instructor, task.id)) == 2
        with pytest.raises(Forbidden):
            task_service.list_submissions(other_instructor, task.id)


class TestCommunity:
    """Test room listing, posting and message deletion."""

    @pytest.fixture
    def intermediate_student(self, make_principal):
        return make_principal("s_mid", student_details=StudentDetails(
            trading_level=LearningLevel.INTERMEDIATE, onboarding_completed=True,
        ))

    def test_room_locks_follow_level(self, community_service, intermediate_student):
        rooms = {room["name"]: room for room in community_service.list_rooms(intermediate_student)}

        assert not rooms["Intermediate"]["locked"]
        assert rooms["Beginner"]["locked"]
        assert rooms["Advanced"]["locked"]

    def test_no_rooms_before_onboarding(self, community_service, store, make_principal, instructor):
        newcomer = make_principal("s_new")
        room = room_named(store, "Beginner")
        community_service.post_message(instructor, room.id, "Welcome")

        assert community_service.list_rooms(newcomer) == []
        with pytest.raises(Forbidden) as exc_info:
            community_service.list_messages(newcomer, room.id)
        assert exc_info.value.reason == "Complete onboarding to access the community"

    def test_staff_see_every_room_unlocked(self, community_service, instructor):
        rooms = community_service.list_rooms(instructor)

        assert len(rooms) == 3
        assert not any(room["locked"] for room in rooms)

    def test_post_in_own_level(self, community_service, store, intermediate_student, publisher):
        room = room_named(store, "Intermediate")
        message = community_service.post_message(intermediate_student, room.id, "  Long GBPJPY  ")

        assert message.content == "Long GBPJPY"
        assert publisher.events[-1][:2] == (f"room:{room.id}", "newMessage")
        assert [m.id for m in community_service.list_messages(intermediate_student, room.id)] == [message.id]

    def test_post_in_other_level(self, community_service, store, intermediate_student):
        room = room_named(store, "Beginner")

        with pytest.raises(Forbidden) as exc_info:
            community_service.post_message(intermediate_student, room.id, "hello")

        assert exc_info.value.reason == "Access denied. Complete the previous level to unlock this group."

    def test_unread_counts(self, community_service, store, instructor, student):
        room = room_named(store, "Beginner")
        community_service.post_message(instructor, room.id, "Welcome")

        rooms = {r["name"]: r for r in community_service.list_rooms(student)}
        assert rooms["Beginner"]["unread"] == 1
        rooms = {r["name"]: r for r in community_service.list_rooms(instructor)}
        assert rooms["Beginner"]["unread"] == 0

    def test_message_validation(self, community_service, store, instructor):
        room = room_named(store, "Advanced")

        with pytest.raises(Conflict):
            community_service.post_message(instructor, room.id, "   ")
        with pytest.raises(Conflict):
            community_service.post_message(instructor, room.id, "x" * 5001)

    def test_delete_own_message(self, community_service, store, student, other_student, publisher):
        room = room_named(store, "Beginner")
        message = community_service.post_message(student, room.id, "oops")

        with pytest.raises(Forbidden):
            community_service.delete_message(other_student, message.id)

        community_service.delete_message(student, message.id)
        assert store.messages.get(message.id) is None
        assert publisher.events[-1][1] == "messageDeleted"

    def test_unknown_room(self, community_service, instructor):
        with pytest.raises(NotFound):
            community_service.list_messages(instructor, "missing")
