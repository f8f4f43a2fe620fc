from django.db import models
import uuid


class School(models.Model):
    """A school that students attend alongside daycare."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    address = models.CharField(max_length=300, blank=True)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'schools'
        ordering = ['name']

    def __str__(self):
        return self.name


class StudentLevel(models.Model):
    """Age/grade bracket a branch can take care of."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'student_levels'
        ordering = ['name']

    def __str__(self):
        return self.name


class Branch(models.Model):
    """Physical daycare location with its own managers, schools and levels."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    address = models.CharField(max_length=300, blank=True)
    phone_number = models.CharField(max_length=20, blank=True)
    is_active = models.BooleanField(default=True)

    managers = models.ManyToManyField(
        'accounts.User',
        blank=True,
        related_name='managed_branches'
    )
    schools = models.ManyToManyField(
        School,
        blank=True,
        related_name='branches'
    )
    student_levels = models.ManyToManyField(
        StudentLevel,
        blank=True,
        related_name='branches'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'branches'
        verbose_name_plural = 'branches'
        ordering = ['name']

    def __str__(self):
        return self.name

    def supports_school(self, school_id):
        return self.schools.filter(id=school_id, is_active=True).exists()

    def supports_student_level(self, student_level_id):
        return self.student_levels.filter(id=student_level_id, is_active=True).exists()
