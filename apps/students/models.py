from django.db import models
import uuid


class Student(models.Model):
    """
    Child enrolled at a branch.

    A branch transfer never moves this row: the target branch enrolls a
    new student record linked through ``transferred_from`` and the old
    record is deactivated.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    full_name = models.CharField(max_length=200)
    date_of_birth = models.DateField(null=True, blank=True)

    parent = models.ForeignKey(
        'accounts.User',
        on_delete=models.PROTECT,
        related_name='children'
    )
    branch = models.ForeignKey(
        'branches.Branch',
        on_delete=models.PROTECT,
        related_name='students'
    )
    school = models.ForeignKey(
        'branches.School',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='students'
    )
    student_level = models.ForeignKey(
        'branches.StudentLevel',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='students'
    )

    transferred_from = models.OneToOneField(
        'self',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='transferred_to'
    )
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'students'
        indexes = [
            models.Index(fields=['branch', 'is_active'], name='students_branch__5d8f0e_idx'),
            models.Index(fields=['parent'], name='students_parent__3b1f7c_idx'),
        ]
        ordering = ['full_name']

    def __str__(self):
        return f"{self.full_name} ({self.branch.name})"
