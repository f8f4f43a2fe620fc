import pytest
from apps.branches.models import Branch, School, StudentLevel


@pytest.mark.django_db
class TestBranchSupport:
    """Tests for the branch's supported school/level lookups."""

    def test_supports_linked_school(self):
        branch = Branch.objects.create(name='Thu Duc')
        school = School.objects.create(name='Le Quy Don Primary')
        branch.schools.add(school)

        assert branch.supports_school(school.id)

    def test_does_not_support_unlinked_school(self):
        branch = Branch.objects.create(name='Thu Duc')
        school = School.objects.create(name='Le Quy Don Primary')

        assert not branch.supports_school(school.id)

    def test_inactive_school_is_unsupported(self):
        branch = Branch.objects.create(name='Thu Duc')
        school = School.objects.create(name='Closed School', is_active=False)
        branch.schools.add(school)

        assert not branch.supports_school(school.id)

    def test_supports_linked_student_level(self):
        branch = Branch.objects.create(name='Thu Duc')
        level = StudentLevel.objects.create(name='Grade 1')
        branch.student_levels.add(level)

        assert branch.supports_student_level(level.id)
        assert not Branch.objects.create(name='Go Vap').supports_student_level(level.id)
