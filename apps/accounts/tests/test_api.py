import pytest
from django.urls import reverse
from rest_framework import status
from apps.accounts.models import User, UserRole


# =============================================================================
# Authentication Tests
# =============================================================================

@pytest.mark.django_db
class TestLogin:
    """Tests for POST /api/auth/login/"""

    def test_login_success(self, api_client, user):
        """Successfully login with valid credentials."""
        url = reverse('users:login')
        data = {
            'email': user.email,
            'password': 'TestPass123!',
        }
        response = api_client.post(url, data)

        assert response.status_code == status.HTTP_200_OK
        assert 'access' in response.data['tokens']
        assert 'refresh' in response.data['tokens']
        assert response.data['user']['email'] == user.email
        assert response.data['user']['role'] == UserRole.PARENT

    def test_login_wrong_password(self, api_client, user):
        """Login fails with wrong password."""
        url = reverse('users:login')
        data = {
            'email': user.email,
            'password': 'WrongPassword123!',
        }
        response = api_client.post(url, data)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert 'error' in response.data

    def test_login_inactive_user(self, api_client, user_inactive):
        """Inactive users cannot login."""
        url = reverse('users:login')
        data = {
            'email': user_inactive.email,
            'password': 'TestPass123!',
        }
        response = api_client.post(url, data)

        assert response.status_code in (
            status.HTTP_401_UNAUTHORIZED,
            status.HTTP_403_FORBIDDEN
        )

    def test_login_updates_last_login(self, api_client, user):
        """Login updates last_login timestamp."""
        url = reverse('users:login')
        api_client.post(url, {'email': user.email, 'password': 'TestPass123!'})

        user.refresh_from_db()
        assert user.last_login is not None


@pytest.mark.django_db
class TestGetCurrentUser:
    """Tests for GET /api/auth/user/"""

    def test_get_current_user(self, authenticated_client, user):
        """Authenticated user sees own profile."""
        url = reverse('users:current-user')
        response = authenticated_client.get(url)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['email'] == user.email
        assert response.data['managed_branches'] == []

    def test_get_current_user_unauthenticated(self, api_client):
        """Unauthenticated request is rejected."""
        url = reverse('users:current-user')
        response = api_client.get(url)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


# =============================================================================
# Model Tests
# =============================================================================

@pytest.mark.django_db
class TestUserModel:
    """Tests for User model helpers."""

    def test_create_superuser_is_admin(self, db):
        admin = User.objects.create_superuser(email='root@example.com', password='TestPass123!')

        assert admin.is_staff
        assert admin.role == UserRole.ADMIN
        assert admin.is_platform_admin

    def test_get_display_name_falls_back_to_email(self, db):
        user = User.objects.create_user(email='nguyen.an@example.com', password='x')

        assert user.get_display_name() == 'nguyen.an'

    def test_manager_manages_own_branch(self, manager, branch, other_branch):
        assert manager.manages_branch(branch.id)
        assert not manager.manages_branch(other_branch.id)

    def test_parent_never_manages_branch(self, user, branch):
        branch.managers.add(user)

        assert not user.manages_branch(branch.id)

    def test_inactive_manager_loses_branch_scope(self, manager, branch):
        manager.is_active = False
        manager.save()

        assert not manager.manages_branch(branch.id)
