from django.contrib import admin
from .models import Student


@admin.register(Student)
class StudentAdmin(admin.ModelAdmin):
    list_display = ['full_name', 'parent', 'branch', 'school', 'student_level', 'is_active']
    list_filter = ['is_active', 'branch']
    search_fields = ['full_name', 'parent__email', 'parent__display_name']
    readonly_fields = ['transferred_from', 'created_at', 'updated_at']

    def get_queryset(self, request):
        """Optimize query with select_related."""
        qs = super().get_queryset(request)
        return qs.select_related('parent', 'branch', 'school', 'student_level')
