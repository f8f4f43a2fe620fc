from django.contrib import admin
from .models import Branch, School, StudentLevel


@admin.register(Branch)
class BranchAdmin(admin.ModelAdmin):
    list_display = ['name', 'address', 'phone_number', 'is_active', 'created_at']
    list_filter = ['is_active']
    search_fields = ['name', 'address']
    filter_horizontal = ['managers', 'schools', 'student_levels']


@admin.register(School)
class SchoolAdmin(admin.ModelAdmin):
    list_display = ['name', 'address', 'is_active']
    list_filter = ['is_active']
    search_fields = ['name']


@admin.register(StudentLevel)
class StudentLevelAdmin(admin.ModelAdmin):
    list_display = ['name', 'is_active']
    list_filter = ['is_active']
    search_fields = ['name']
