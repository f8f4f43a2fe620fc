# Generated manually for the branch transfer service

import uuid
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import apps.transfers.models

STATUS_CHOICES = [
    ('Pending', 'Pending'),
    ('ReadyToTransfer', 'Ready to transfer'),
    ('Approved', 'Approved'),
    ('Rejected', 'Rejected'),
    ('Cancelled', 'Cancelled'),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('branches', '0001_initial'),
        ('students', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='TransferDocument',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('file', models.FileField(upload_to=apps.transfers.models.transfer_document_path)),
                ('original_name', models.CharField(blank=True, max_length=255)),
                ('content_type', models.CharField(max_length=100)),
                ('size_bytes', models.PositiveIntegerField()),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('uploaded_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='transfer_documents', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'transfer_documents',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='TransferRequest',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('change_school', models.BooleanField(default=False)),
                ('change_level', models.BooleanField(default=False)),
                ('request_reason', models.TextField(blank=True)),
                ('status', models.CharField(choices=STATUS_CHOICES, db_index=True, default='Pending', max_length=20)),
                ('rejection_reason', models.TextField(blank=True)),
                ('manager_notes', models.TextField(blank=True)),
                ('created_time', models.DateTimeField(auto_now_add=True)),
                ('decided_time', models.DateTimeField(blank=True, null=True)),
                ('old_branch_decided_time', models.DateTimeField(blank=True, null=True)),
                ('new_branch_decided_time', models.DateTimeField(blank=True, null=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('current_branch', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='outgoing_transfer_requests', to='branches.branch')),
                ('current_school', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='branches.school')),
                ('current_student_level', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='branches.studentlevel')),
                ('decided_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('document', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='transfer_requests', to='transfers.transferdocument')),
                ('enrolled_student', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='enrolled_by_transfer', to='students.student')),
                ('new_branch_decided_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('old_branch_decided_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('requested_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='transfer_requests', to=settings.AUTH_USER_MODEL)),
                ('student', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='transfer_requests', to='students.student')),
                ('target_branch', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='incoming_transfer_requests', to='branches.branch')),
                ('target_school', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='+', to='branches.school')),
                ('target_student_level', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='+', to='branches.studentlevel')),
            ],
            options={
                'db_table': 'transfer_requests',
                'ordering': ['-created_time'],
                'indexes': [
                    models.Index(fields=['current_branch', 'status'], name='transfer_re_current_6a1b2c_idx'),
                    models.Index(fields=['target_branch', 'status'], name='transfer_re_target__9d3e4f_idx'),
                    models.Index(fields=['requested_by', 'created_time'], name='transfer_re_request_2f7a8b_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('target_branch', models.F('current_branch')), _negated=True), name='transfer_target_differs_from_current'),
                    models.UniqueConstraint(condition=models.Q(('status__in', ('Pending', 'ReadyToTransfer'))), fields=('student',), name='transfer_one_open_request_per_student'),
                ],
            },
        ),
        migrations.CreateModel(
            name='TransferAuditEntry',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('action', models.CharField(max_length=40)),
                ('from_status', models.CharField(blank=True, choices=STATUS_CHOICES, max_length=20)),
                ('to_status', models.CharField(choices=STATUS_CHOICES, max_length=20)),
                ('notes', models.TextField(blank=True)),
                ('reason', models.TextField(blank=True)),
                ('details', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('actor', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='transfer_audit_entries', to=settings.AUTH_USER_MODEL)),
                ('request', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='audit_entries', to='transfers.transferrequest')),
            ],
            options={
                'db_table': 'transfer_audit_entries',
                'ordering': ['created_at'],
            },
        ),
        migrations.CreateModel(
            name='TransferNotification',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('subject', models.CharField(max_length=200)),
                ('message', models.TextField()),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('sent', 'Sent'), ('failed', 'Failed')], default='pending', max_length=20)),
                ('attempts', models.PositiveIntegerField(default=0)),
                ('last_error', models.TextField(blank=True)),
                ('next_attempt_at', models.DateTimeField(blank=True, null=True)),
                ('sent_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('recipient', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='transfer_notifications', to=settings.AUTH_USER_MODEL)),
                ('request', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to='transfers.transferrequest')),
                ('audit_entry', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='notification', to='transfers.transferauditentry')),
            ],
            options={
                'db_table': 'transfer_notifications',
                'ordering': ['created_at'],
                'indexes': [models.Index(fields=['status', 'next_attempt_at'], name='transfer_no_status_5c6d7e_idx')],
            },
        ),
    ]
