"""Integration tests for API routes."""
import pytest
from datetime import datetime, timedelta, timezone
from fastapi import status

from app.domain.principal import LearningLevel, Role, TokenClaims

PASSWORD = "demo-password-123"


def signup(client, email, role="student", name="Test User"):
    return client.post(
        "/auth/signup",
        json={"email": email, "password": PASSWORD, "name": name, "role": role},
    )


def login_headers(client, email):
    response = client.post("/auth/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == status.HTTP_200_OK, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def onboard(client, headers, level=LearningLevel.BEGINNER):
    response = client.post("/student/onboarding/complete", json={"tradingLevel": level.value}, headers=headers)
    assert response.status_code == status.HTTP_200_OK, response.text


def rooms_by_name(client, headers):
    return {room["name"]: room for room in client.get("/community/rooms", headers=headers).json()}


@pytest.fixture
def root_headers(test_client):
    """Headers for the configured super admin."""
    signup(test_client, "root@tradingacademy.io", role="admin", name="Root")
    return login_headers(test_client, "root@tradingacademy.io")


@pytest.fixture
def instructor_headers(test_client, root_headers):
    """Headers for an approved instructor."""
    user_id = signup(test_client, "coach@tradingacademy.io", role="instructor").json()["user"]["id"]
    test_client.post("/admin/approvals", json={"userId": user_id, "action": "approve"}, headers=root_headers)
    return login_headers(test_client, "coach@tradingacademy.io")


@pytest.fixture
def student_headers(test_client):
    token = signup(test_client, "trader@tradingacademy.io").json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


class TestAuthenticationRoutes:
    """Test authentication endpoints."""

    def test_signup_student(self, test_client):
        """Test that students receive a token at signup."""
        response = signup(test_client, "new@tradingacademy.io")

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["access_token"]
        assert data["token_type"] == "bearer"
        assert data["user"]["role"] == "student"

    def test_signup_instructor_is_pending(self, test_client):
        response = signup(test_client, "coach@tradingacademy.io", role="instructor")

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["access_token"] is None
        assert response.json()["user"]["status"] == "pending"

    def test_signup_duplicate(self, test_client):
        signup(test_client, "dup@tradingacademy.io")
        response = signup(test_client, "dup@tradingacademy.io")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"error": "User already exists"}

    def test_login_with_invalid_credentials(self, test_client):
        signup(test_client, "trader@tradingacademy.io")
        response = test_client.post(
            "/auth/login",
            json={"email": "trader@tradingacademy.io", "password": "wrongpassword"},
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json() == {"error": "Invalid email or password"}

    def test_pending_instructor_login(self, test_client):
        signup(test_client, "coach@tradingacademy.io", role="instructor")
        response = test_client.post(
            "/auth/login",
            json={"email": "coach@tradingacademy.io", "password": PASSWORD},
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert "pending approval" in response.json()["error"]

    def test_get_current_user_with_valid_token(self, test_client, student_headers):
        response = test_client.get("/auth/me", headers=student_headers)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["email"] == "trader@tradingacademy.io"
        assert data["role"] == "student"

    def test_get_current_user_without_token(self, test_client):
        """Test that a missing credential is a 401 with a Bearer challenge."""
        response = test_client.get("/auth/me")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert response.json() == {"error": "Authentication required"}

    def test_expired_token_looks_like_missing_token(self, test_client, codec):
        claims = TokenClaims(sub="u1", email="u1@tradingacademy.io", role=Role.STUDENT)
        token = codec.issue(claims, now=datetime.now(timezone.utc) - timedelta(days=8))

        response = test_client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json() == test_client.get("/auth/me").json()

    def test_onboarding(self, test_client, student_headers):
        response = test_client.post(
            "/student/onboarding/complete",
            json={"tradingLevel": "advanced"},
            headers=student_headers,
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["tradingLevel"] == "advanced"

    def test_request_id_header(self, test_client):
        response = test_client.get("/health")

        assert "X-Request-ID" in response.headers


class TestAdminRoutes:
    """Test account administration endpoints."""

    def test_student_cannot_list_users(self, test_client, student_headers):
        response = test_client.get("/admin/users", headers=student_headers)

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_approval_flow(self, test_client, root_headers):
        user_id = signup(test_client, "coach@tradingacademy.io", role="instructor").json()["user"]["id"]

        pending = test_client.get("/admin/approvals", headers=root_headers).json()
        assert user_id in [user["id"] for user in pending]

        response = test_client.post(
            "/admin/approvals",
            json={"userId": user_id, "action": "approve"},
            headers=root_headers,
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["user"]["status"] == "approved"
        assert login_headers(test_client, "coach@tradingacademy.io")

    def test_decided_registration_cannot_be_reviewed_again(self, test_client, root_headers, instructor_headers):
        coach = test_client.get("/auth/me", headers=instructor_headers).json()

        response = test_client.post(
            "/admin/approvals",
            json={"userId": coach["id"], "action": "reject"},
            headers=root_headers,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"error": "User is not pending approval"}
        assert login_headers(test_client, "coach@tradingacademy.io")

    def test_cannot_delete_self(self, test_client, root_headers):
        me = test_client.get("/auth/me", headers=root_headers).json()
        response = test_client.delete(f"/admin/users/{me['id']}", headers=root_headers)

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json() == {"error": "Cannot delete your own account"}

    def test_change_role(self, test_client, root_headers, student_headers):
        me = test_client.get("/auth/me", headers=student_headers).json()
        response = test_client.put(
            f"/admin/users/{me['id']}",
            json={"role": "instructor"},
            headers=root_headers,
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["user"]["role"] == "instructor"

    def test_delete_unknown_user(self, test_client, root_headers):
        response = test_client.delete("/admin/users/missing", headers=root_headers)

        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestDemoTradingRoutes:
    """Test the task and submission endpoints."""

    def test_graded_submission_cannot_be_deleted(self, test_client, instructor_headers, student_headers):
        """Test the full submit, grade, delete sequence over HTTP."""
        task = test_client.post(
            "/demo-trading/tasks",
            json={"title": "Trade EURUSD", "description": "Open one demo position"},
            headers=instructor_headers,
        )
        assert task.status_code == status.HTTP_201_CREATED
        task_id = task.json()["id"]

        submitted = test_client.post(
            f"/demo-trading/tasks/{task_id}/submit",
            json={"reasoning": "Bought the London open breakout"},
            headers=student_headers,
        )
        assert submitted.status_code == status.HTTP_200_OK
        submission_id = submitted.json()["submissionId"]

        reviewed = test_client.put(
            f"/demo-submissions/{submission_id}/review",
            json={"grade": 85},
            headers=instructor_headers,
        )
        assert reviewed.status_code == status.HTTP_200_OK
        assert reviewed.json()["submission"]["grade"] == 85

        response = test_client.delete(f"/demo-trading/submissions/{submission_id}", headers=student_headers)

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json() == {"error": "Cannot delete a submission that has been reviewed."}

    def test_student_cannot_create_task(self, test_client, student_headers):
        response = test_client.post(
            "/demo-trading/tasks",
            json={"title": "Mine", "description": "All mine"},
            headers=student_headers,
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_list_tasks(self, test_client, instructor_headers, student_headers):
        test_client.post(
            "/demo-trading/tasks",
            json={"title": "Trade EURUSD", "description": "Open one demo position"},
            headers=instructor_headers,
        )

        response = test_client.get("/demo-trading/tasks", headers=student_headers)

        assert response.status_code == status.HTTP_200_OK
        assert [task["title"] for task in response.json()] == ["Trade EURUSD"]

    def test_unknown_submission(self, test_client, student_headers):
        response = test_client.delete("/demo-trading/submissions/missing", headers=student_headers)

        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestCommunityRoutes:
    """Test the community endpoints."""

    def test_no_rooms_before_onboarding(self, test_client, student_headers):
        response = test_client.get("/community/rooms", headers=student_headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == []

    def test_rooms_locked_by_level(self, test_client, student_headers):
        onboard(test_client, student_headers, LearningLevel.INTERMEDIATE)

        rooms = rooms_by_name(test_client, student_headers)

        assert rooms["Intermediate"]["locked"] is False
        assert rooms["Beginner"]["locked"] is True
        assert rooms["Advanced"]["locked"] is True

    def test_post_to_locked_room(self, test_client, student_headers):
        onboard(test_client, student_headers)
        rooms = rooms_by_name(test_client, student_headers)

        response = test_client.post(
            f"/community/rooms/{rooms['Advanced']['id']}/messages",
            json={"content": "hello"},
            headers=student_headers,
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_post_before_onboarding(self, test_client, student_headers, instructor_headers):
        room_id = rooms_by_name(test_client, instructor_headers)["Beginner"]["id"]

        response = test_client.post(
            f"/community/rooms/{room_id}/messages",
            json={"content": "hello"},
            headers=student_headers,
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json() == {"error": "Complete onboarding to access the community"}

    def test_post_and_read(self, test_client, student_headers):
        onboard(test_client, student_headers)
        room_id = rooms_by_name(test_client, student_headers)["Beginner"]["id"]

        posted = test_client.post(
            f"/community/rooms/{room_id}/messages",
            json={"content": "First trade today"},
            headers=student_headers,
        )
        assert posted.status_code == status.HTTP_201_CREATED

        messages = test_client.get(f"/community/rooms/{room_id}/messages", headers=student_headers).json()
        assert [m["content"] for m in messages] == ["First trade today"]

    def test_advance_level_unlocks_next_room(self, test_client, instructor_headers, student_headers):
        onboard(test_client, student_headers)
        student_id = test_client.get("/auth/me", headers=student_headers).json()["id"]

        response = test_client.post(f"/instructor/students/{student_id}/advance-level", headers=instructor_headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["learningLevel"] == "intermediate"
        rooms = rooms_by_name(test_client, student_headers)
        assert rooms["Intermediate"]["locked"] is False
        assert rooms["Beginner"]["locked"] is True

    def test_student_cannot_advance_level(self, test_client, student_headers):
        student_id = test_client.get("/auth/me", headers=student_headers).json()["id"]

        response = test_client.post(f"/instructor/students/{student_id}/advance-level", headers=student_headers)

        assert response.status_code == status.HTTP_403_FORBIDDEN
