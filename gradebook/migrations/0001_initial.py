import uuid
from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


SEASON_DISPLAY_CHOICES = [
    ('Season 1', 'Season 1'),
    ('الموسم الأول', 'الموسم الأول'),
    ('وەرزی یەکەم', 'وەرزی یەکەم'),
    ('Season 2', 'Season 2'),
    ('الموسم الثاني', 'الموسم الثاني'),
    ('وەرزی دووەم', 'وەرزی دووەم'),
    ('Season 3', 'Season 3'),
    ('الموسم الثالث', 'الموسم الثالث'),
    ('وەرزی سێیەم', 'وەرزی سێیەم'),
    ('Season 4', 'Season 4'),
    ('الموسم الرابع', 'الموسم الرابع'),
    ('وەرزی چوارەم', 'وەرزی چوارەم'),
]

GRADING_TYPE_CHOICES = [
    ('exercise', 'Exercise'),
    ('monthly_exam', 'Monthly Exam'),
    ('attendance', 'Attendance'),
    ('behaviour', 'Behaviour'),
    ('season_exam', 'Season Exam'),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('academics', '0001_initial'),
        ('core', '0001_initial'),
        ('students', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='GradeLedgerEntry',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('grading_type', models.CharField(choices=GRADING_TYPE_CHOICES, max_length=20)),
                ('sub_key', models.CharField(blank=True, default='', help_text='Monthly exam number ("1" or "2"); empty for other types', max_length=2)),
                ('score_cap', models.DecimalField(decimal_places=2, help_text='Maximum value for this entry', max_digits=6)),
                ('value', models.DecimalField(decimal_places=2, max_digits=6, validators=[django.core.validators.MinValueValidator(Decimal('0'))])),
                ('recorded_at', models.DateTimeField()),
                ('notes', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('student', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='ledger_entries', to='students.student')),
                ('subject', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='ledger_entries', to='academics.subject')),
                ('season', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='ledger_entries', to='core.season')),
                ('school_class', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='ledger_entries', to='academics.class')),
                ('branch', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='ledger_entries', to='academics.branch')),
                ('exercise', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='ledger_entries', to='academics.exercise')),
                ('part', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='ledger_entries', to='academics.part')),
                ('chapter', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='ledger_entries', to='academics.chapter')),
                ('recorded_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='recorded_grades', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Grade Ledger Entry',
                'verbose_name_plural': 'Grade Ledger Entries',
                'ordering': ['-recorded_at'],
                'indexes': [
                    models.Index(fields=['student', 'subject', 'season', 'grading_type'], name='ledger_student_context_idx'),
                    models.Index(fields=['exercise', 'school_class', 'branch'], name='ledger_exercise_branch_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('grading_type', 'exercise')), fields=('student', 'exercise'), name='unique_exercise_grade_per_student'),
                    models.UniqueConstraint(condition=models.Q(('grading_type', 'exercise'), _negated=True), fields=('student', 'subject', 'season', 'grading_type', 'sub_key'), name='unique_category_grade_per_student'),
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(('chapter__isnull', False), ('exercise__isnull', False), ('grading_type', 'exercise'), ('part__isnull', False), ('sub_key', '')),
                            models.Q(('chapter__isnull', True), ('exercise__isnull', True), ('grading_type', 'monthly_exam'), ('part__isnull', True), ('sub_key__in', ('1', '2'))),
                            models.Q(('chapter__isnull', True), ('exercise__isnull', True), ('grading_type__in', ['attendance', 'behaviour', 'season_exam']), ('part__isnull', True), ('sub_key', '')),
                            _connector='OR',
                        ),
                        name='ledger_entry_shape_matches_type',
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name='GradeSummary',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('season_display', models.CharField(choices=SEASON_DISPLAY_CHOICES, max_length=50)),
                ('season_exam', models.DecimalField(decimal_places=2, default=Decimal('0'), max_digits=5)),
                ('exercises', models.DecimalField(decimal_places=2, default=Decimal('0'), help_text='Capped sum of exercise grades', max_digits=5)),
                ('attendance', models.DecimalField(decimal_places=2, default=Decimal('0'), max_digits=5)),
                ('behaviour', models.DecimalField(decimal_places=2, default=Decimal('0'), max_digits=5)),
                ('monthly_exam_1', models.DecimalField(blank=True, decimal_places=2, max_digits=5, null=True)),
                ('monthly_exam_2', models.DecimalField(blank=True, decimal_places=2, max_digits=5, null=True)),
                ('total', models.DecimalField(decimal_places=2, default=Decimal('0'), editable=False, max_digits=5)),
                ('notes', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('student', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='grade_summaries', to='students.student')),
                ('subject', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='grade_summaries', to='academics.subject')),
            ],
            options={
                'verbose_name': 'Grade Summary',
                'verbose_name_plural': 'Grade Summaries',
                'ordering': ['student', 'subject', 'season_display'],
                'constraints': [
                    models.UniqueConstraint(fields=('student', 'subject', 'season_display'), name='unique_summary_per_student_subject_season'),
                ],
            },
        ),
        migrations.CreateModel(
            name='LedgerAuditLog',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('grading_type', models.CharField(choices=GRADING_TYPE_CHOICES, max_length=20)),
                ('sub_key', models.CharField(blank=True, default='', max_length=2)),
                ('action', models.CharField(choices=[('CREATE', 'Created'), ('UPDATE', 'Updated'), ('DELETE', 'Deleted')], max_length=10)),
                ('old_value', models.DecimalField(blank=True, decimal_places=2, help_text='Previous value', max_digits=6, null=True)),
                ('new_value', models.DecimalField(blank=True, decimal_places=2, help_text='New value', max_digits=6, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('entry', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='audit_logs', to='gradebook.gradeledgerentry')),
                ('student', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='ledger_audit_logs', to='students.student')),
                ('subject', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='ledger_audit_logs', to='academics.subject')),
                ('season', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='ledger_audit_logs', to='core.season')),
                ('user', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='ledger_audit_logs', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Ledger Audit Log',
                'verbose_name_plural': 'Ledger Audit Logs',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['student', 'subject', 'season'], name='ledger_audit_context_idx'),
                ],
            },
        ),
    ]
