import pytest
from datetime import time, timedelta
from decimal import Decimal
from django.core.files.uploadedfile import SimpleUploadedFile
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from apps.accounts.models import User, UserRole
from apps.branches.models import Branch, School, StudentLevel
from apps.students.models import Student
from apps.operations.models import Order, Slot, Subscription
from apps.transfers.services import (
    approve_transfer_request,
    branch_now,
    create_transfer_request,
)


def client_for(user):
    """Return an API client authenticated as the given user."""
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return client


def make_document(name='proof.pdf', content_type='application/pdf', content=b'%PDF-1.4 test document'):
    """Return an uploaded file usable as a supporting document."""
    return SimpleUploadedFile(name, content, content_type=content_type)


@pytest.fixture(autouse=True)
def media_root(settings, tmp_path):
    """Store uploaded documents in a temporary directory."""
    settings.MEDIA_ROOT = str(tmp_path / 'media')
    settings.TRANSFER_NOTIFICATION_BACKEND = 'apps.transfers.services.notifications.EmailNotificationBackend'
    return settings.MEDIA_ROOT


# =============================================================================
# Users
# =============================================================================

@pytest.fixture
def parent(db):
    """Create and return the parent who submits transfer requests."""
    return User.objects.create_user(
        email='parent@example.com',
        password='TestPass123!',
        display_name='Parent',
    )


@pytest.fixture
def other_parent(db):
    """Create and return a parent unrelated to the student."""
    return User.objects.create_user(
        email='other.parent@example.com',
        password='TestPass123!',
        display_name='Other Parent',
    )


@pytest.fixture
def old_manager(db):
    """Create and return a manager of the branch the student leaves."""
    return User.objects.create_user(
        email='old.manager@example.com',
        password='TestPass123!',
        display_name='Old Branch Manager',
        role=UserRole.MANAGER,
    )


@pytest.fixture
def new_manager(db):
    """Create and return a manager of the branch the student joins."""
    return User.objects.create_user(
        email='new.manager@example.com',
        password='TestPass123!',
        display_name='New Branch Manager',
        role=UserRole.MANAGER,
    )


@pytest.fixture
def outsider_manager(db):
    """Create and return a manager of an unrelated branch."""
    manager = User.objects.create_user(
        email='outsider@example.com',
        password='TestPass123!',
        display_name='Outsider Manager',
        role=UserRole.MANAGER,
    )
    branch = Branch.objects.create(name='Thu Duc', address='9 Vo Van Ngan')
    branch.managers.add(manager)
    return manager


@pytest.fixture
def platform_admin(db):
    """Create and return a platform administrator."""
    return User.objects.create_user(
        email='admin@example.com',
        password='TestPass123!',
        display_name='Admin',
        role=UserRole.ADMIN,
    )


# =============================================================================
# Branches and student
# =============================================================================

@pytest.fixture
def school(db):
    return School.objects.create(name='Nguyen Du Primary')


@pytest.fixture
def new_school(db):
    return School.objects.create(name='Le Quy Don Primary')


@pytest.fixture
def level(db):
    return StudentLevel.objects.create(name='Grade 1')


@pytest.fixture
def new_level(db):
    return StudentLevel.objects.create(name='Grade 2')


@pytest.fixture
def old_branch(db, old_manager, school, level):
    """Branch the student currently attends."""
    branch = Branch.objects.create(name='District 1', address='1 Le Loi')
    branch.managers.add(old_manager)
    branch.schools.add(school)
    branch.student_levels.add(level)
    return branch


@pytest.fixture
def new_branch(db, new_manager, school, new_school, level, new_level):
    """Branch the student transfers to."""
    branch = Branch.objects.create(name='District 7', address='7 Nguyen Van Linh')
    branch.managers.add(new_manager)
    branch.schools.add(school, new_school)
    branch.student_levels.add(level, new_level)
    return branch


@pytest.fixture
def student(db, parent, old_branch, school, level):
    """Create and return the parent's child enrolled at the old branch."""
    return Student.objects.create(
        full_name='Minh Anh',
        parent=parent,
        branch=old_branch,
        school=school,
        student_level=level,
    )


# =============================================================================
# Operational data at the old branch
# =============================================================================

@pytest.fixture
def subscriptions(student, old_branch):
    """Half-used 1,000,000 package and unused 500,000 package."""
    half_used = Subscription.objects.create(
        student=student,
        branch=old_branch,
        package_name='Monthly 10',
        price_final=Decimal('1000000.00'),
        used_slots=5,
        total_slots=10,
    )
    unused = Subscription.objects.create(
        student=student,
        branch=old_branch,
        package_name='Weekly 5',
        price_final=Decimal('500000.00'),
        used_slots=0,
        total_slots=5,
    )
    return [half_used, unused]


@pytest.fixture
def future_slot(student, old_branch, subscriptions):
    """Slot booked three days from now in branch time."""
    return Slot.objects.create(
        student=student,
        branch=old_branch,
        subscription=subscriptions[0],
        date=branch_now().date() + timedelta(days=3),
        start_time=time(8, 0),
        timeframe_name='Morning',
        room_name='Sunflower',
    )


@pytest.fixture
def future_slots(student, old_branch):
    """Two slots booked later this week in branch time."""
    today = branch_now().date()
    return [
        Slot.objects.create(
            student=student,
            branch=old_branch,
            date=today + timedelta(days=offset),
            start_time=time(13, 30),
            timeframe_name='Afternoon',
            room_name='Daisy',
        )
        for offset in (1, 2)
    ]


@pytest.fixture
def pending_order(student, old_branch):
    return Order.objects.create(
        student=student,
        branch=old_branch,
        item_count=2,
        total_amount=Decimal('150000.00'),
    )


# =============================================================================
# Transfer requests
# =============================================================================

@pytest.fixture
def pending_request(parent, student, new_branch):
    """Pending request moving the student to the new branch."""
    return create_transfer_request(
        requested_by=parent,
        student_id=student.id,
        target_branch_id=new_branch.id,
        request_reason='We moved house',
    )


@pytest.fixture
def school_change_request(parent, student, new_branch, new_school):
    """Pending request that also changes school, with a document."""
    return create_transfer_request(
        requested_by=parent,
        student_id=student.id,
        target_branch_id=new_branch.id,
        change_school=True,
        target_school_id=new_school.id,
        document_file=make_document(),
    )


@pytest.fixture
def ready_request(pending_request, old_manager):
    """Request already approved by the old branch."""
    return approve_transfer_request(
        request_id=pending_request.id,
        user=old_manager,
    ).transfer_request


# =============================================================================
# API clients
# =============================================================================

@pytest.fixture
def api_client():
    """Return an unauthenticated API client."""
    return APIClient()


@pytest.fixture
def parent_client(parent):
    return client_for(parent)


@pytest.fixture
def other_parent_client(other_parent):
    return client_for(other_parent)


@pytest.fixture
def old_manager_client(old_manager):
    return client_for(old_manager)


@pytest.fixture
def new_manager_client(new_manager):
    return client_for(new_manager)


@pytest.fixture
def outsider_client(outsider_manager):
    return client_for(outsider_manager)
