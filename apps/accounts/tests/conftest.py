import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from apps.accounts.models import User, UserRole
from apps.branches.models import Branch


@pytest.fixture
def api_client():
    """Return an unauthenticated API client."""
    return APIClient()


@pytest.fixture
def user(db):
    """Create and return a test parent user."""
    return User.objects.create_user(
        email='testuser@example.com',
        password='TestPass123!',
        display_name='Test User',
    )


@pytest.fixture
def user_inactive(db):
    """Create and return an inactive user."""
    return User.objects.create_user(
        email='inactive@example.com',
        password='TestPass123!',
        display_name='Inactive User',
        is_active=False,
    )


@pytest.fixture
def manager(db):
    """Create and return a branch manager."""
    return User.objects.create_user(
        email='manager@example.com',
        password='TestPass123!',
        display_name='Branch Manager',
        role=UserRole.MANAGER,
    )


@pytest.fixture
def branch(db, manager):
    """Create a branch managed by the manager fixture."""
    branch = Branch.objects.create(name='District 1', address='1 Le Loi')
    branch.managers.add(manager)
    return branch


@pytest.fixture
def other_branch(db):
    """Create a branch with no managers."""
    return Branch.objects.create(name='District 7', address='7 Nguyen Van Linh')


@pytest.fixture
def authenticated_client(api_client, user):
    """Return API client authenticated as test user."""
    refresh = RefreshToken.for_user(user)
    api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return api_client
