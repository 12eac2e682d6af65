import uuid
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Q

from academics.models import Class, Branch, Subject, Chapter, Part, Exercise
from core.models import Season
from students.models import Student

from .seasons import SEASON_DISPLAY_CHOICES
from .utils import compute_total


class GradingType(models.TextChoices):
    EXERCISE = 'exercise', 'Exercise'
    MONTHLY_EXAM = 'monthly_exam', 'Monthly Exam'
    ATTENDANCE = 'attendance', 'Attendance'
    BEHAVIOUR = 'behaviour', 'Behaviour'
    SEASON_EXAM = 'season_exam', 'Season Exam'


MONTHLY_EXAM_KEYS = ('1', '2')


class GradeLedgerEntry(models.Model):
    """
    One recorded grade: a single exercise, monthly exam, attendance mark,
    behaviour mark or season exam for one student.

    Exercise entries are unique per (student, exercise) and carry the
    exercise/part/chapter they belong to. Every other type is unique per
    (student, subject, season, grading_type, sub_key), where sub_key is the
    monthly exam number and empty for the remaining types.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Envelope
    student = models.ForeignKey(
        Student,
        on_delete=models.CASCADE,
        related_name='ledger_entries',
        db_index=True
    )
    subject = models.ForeignKey(
        Subject,
        on_delete=models.CASCADE,
        related_name='ledger_entries',
        db_index=True
    )
    season = models.ForeignKey(
        Season,
        on_delete=models.CASCADE,
        related_name='ledger_entries',
        db_index=True
    )
    school_class = models.ForeignKey(
        Class,
        on_delete=models.CASCADE,
        related_name='ledger_entries'
    )
    branch = models.ForeignKey(
        Branch,
        on_delete=models.CASCADE,
        related_name='ledger_entries'
    )

    grading_type = models.CharField(max_length=20, choices=GradingType.choices)
    sub_key = models.CharField(
        max_length=2,
        blank=True,
        default='',
        help_text='Monthly exam number ("1" or "2"); empty for other types'
    )

    # Exercise hierarchy (exercise entries only)
    exercise = models.ForeignKey(
        Exercise,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='ledger_entries'
    )
    part = models.ForeignKey(
        Part,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='ledger_entries'
    )
    chapter = models.ForeignKey(
        Chapter,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='ledger_entries'
    )

    score_cap = models.DecimalField(
        max_digits=6,
        decimal_places=2,
        help_text='Maximum value for this entry'
    )
    value = models.DecimalField(
        max_digits=6,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0'))]
    )

    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='recorded_grades'
    )
    recorded_at = models.DateTimeField()
    notes = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-recorded_at']
        verbose_name = 'Grade Ledger Entry'
        verbose_name_plural = 'Grade Ledger Entries'
        constraints = [
            models.UniqueConstraint(
                fields=['student', 'exercise'],
                condition=Q(grading_type='exercise'),
                name='unique_exercise_grade_per_student',
            ),
            models.UniqueConstraint(
                fields=['student', 'subject', 'season', 'grading_type', 'sub_key'],
                condition=~Q(grading_type='exercise'),
                name='unique_category_grade_per_student',
            ),
            models.CheckConstraint(
                condition=(
                    Q(
                        grading_type='exercise',
                        sub_key='',
                        exercise__isnull=False,
                        part__isnull=False,
                        chapter__isnull=False,
                    )
                    | Q(
                        grading_type='monthly_exam',
                        sub_key__in=MONTHLY_EXAM_KEYS,
                        exercise__isnull=True,
                        part__isnull=True,
                        chapter__isnull=True,
                    )
                    | Q(
                        grading_type__in=['attendance', 'behaviour', 'season_exam'],
                        sub_key='',
                        exercise__isnull=True,
                        part__isnull=True,
                        chapter__isnull=True,
                    )
                ),
                name='ledger_entry_shape_matches_type',
            ),
        ]
        indexes = [
            models.Index(fields=['student', 'subject', 'season', 'grading_type'], name='ledger_student_context_idx'),
            models.Index(fields=['exercise', 'school_class', 'branch'], name='ledger_exercise_branch_idx'),
        ]

    def __str__(self):
        label = self.get_grading_type_display()
        if self.sub_key:
            label = f"{label} {self.sub_key}"
        return f"{self.student} - {self.subject} {label}: {self.value}/{self.score_cap}"

    def clean(self):
        errors = {}
        if self.grading_type == GradingType.EXERCISE:
            if not (self.exercise_id and self.part_id and self.chapter_id):
                errors['exercise'] = 'Exercise grades need an exercise, part and chapter.'
            if self.sub_key:
                errors['sub_key'] = 'Only monthly exams take an exam number.'
        else:
            if self.exercise_id or self.part_id or self.chapter_id:
                errors['exercise'] = 'Only exercise grades reference an exercise.'
            if self.grading_type == GradingType.MONTHLY_EXAM:
                if self.sub_key not in MONTHLY_EXAM_KEYS:
                    errors['sub_key'] = 'Monthly exams need exam number "1" or "2".'
            elif self.sub_key:
                errors['sub_key'] = 'Only monthly exams take an exam number.'
        if self.value is not None and self.score_cap is not None and self.value > self.score_cap:
            errors['value'] = f'Value ({self.value}) cannot exceed the cap ({self.score_cap}).'
        if errors:
            raise ValidationError(errors)


class GradeSummary(models.Model):
    """
    Season aggregate for one student in one subject.

    Keyed by the season's display label rather than the Season record.
    `total` is derived from the category fields on every save.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    student = models.ForeignKey(
        Student,
        on_delete=models.CASCADE,
        related_name='grade_summaries',
        db_index=True
    )
    subject = models.ForeignKey(
        Subject,
        on_delete=models.CASCADE,
        related_name='grade_summaries',
        db_index=True
    )
    season_display = models.CharField(max_length=50, choices=SEASON_DISPLAY_CHOICES)

    season_exam = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0'))
    exercises = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal('0'),
        help_text='Capped sum of exercise grades'
    )
    attendance = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0'))
    behaviour = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0'))
    monthly_exam_1 = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    monthly_exam_2 = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    total = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0'), editable=False)

    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['student', 'subject', 'season_display']
        verbose_name = 'Grade Summary'
        verbose_name_plural = 'Grade Summaries'
        constraints = [
            models.UniqueConstraint(
                fields=['student', 'subject', 'season_display'],
                name='unique_summary_per_student_subject_season',
            ),
        ]

    def __str__(self):
        return f"{self.student} - {self.subject} ({self.season_display}): {self.total}"

    @property
    def monthly_exam(self):
        """Monthly exam scores as an ordered list of at most two values."""
        if self.monthly_exam_2 is not None:
            return [self.monthly_exam_1 or Decimal('0'), self.monthly_exam_2]
        if self.monthly_exam_1 is not None:
            return [self.monthly_exam_1]
        return []

    @monthly_exam.setter
    def monthly_exam(self, values):
        values = list(values)
        if len(values) > 2:
            raise ValueError('At most two monthly exams per season')
        self.monthly_exam_1 = values[0] if len(values) > 0 else None
        self.monthly_exam_2 = values[1] if len(values) > 1 else None

    def recompute_total(self):
        self.total = compute_total(
            season_exam=self.season_exam,
            exercises=self.exercises,
            attendance=self.attendance,
            behaviour=self.behaviour,
            monthly_exams=self.monthly_exam,
        )
        return self.total

    def save(self, *args, **kwargs):
        self.recompute_total()
        update_fields = kwargs.get('update_fields')
        if update_fields is not None and 'total' not in update_fields:
            kwargs['update_fields'] = list(update_fields) + ['total']
        super().save(*args, **kwargs)


class LedgerAuditLog(models.Model):
    """
    Audit log for ledger changes. Tracks who changed what and when.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    ACTION_CHOICES = [
        ('CREATE', 'Created'),
        ('UPDATE', 'Updated'),
        ('DELETE', 'Deleted'),
    ]

    # The entry being audited (null once deleted)
    entry = models.ForeignKey(
        GradeLedgerEntry,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs'
    )

    # Store identifiers separately in case the entry is deleted
    student = models.ForeignKey(
        Student,
        on_delete=models.CASCADE,
        related_name='ledger_audit_logs'
    )
    subject = models.ForeignKey(
        Subject,
        on_delete=models.CASCADE,
        related_name='ledger_audit_logs'
    )
    season = models.ForeignKey(
        Season,
        on_delete=models.CASCADE,
        related_name='ledger_audit_logs'
    )
    grading_type = models.CharField(max_length=20, choices=GradingType.choices)
    sub_key = models.CharField(max_length=2, blank=True, default='')

    # Who made the change
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='ledger_audit_logs'
    )

    # What changed
    action = models.CharField(max_length=10, choices=ACTION_CHOICES)
    old_value = models.DecimalField(
        max_digits=6,
        decimal_places=2,
        null=True,
        blank=True,
        help_text='Previous value'
    )
    new_value = models.DecimalField(
        max_digits=6,
        decimal_places=2,
        null=True,
        blank=True,
        help_text='New value'
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        verbose_name = 'Ledger Audit Log'
        verbose_name_plural = 'Ledger Audit Logs'
        indexes = [
            models.Index(fields=['student', 'subject', 'season'], name='ledger_audit_context_idx'),
        ]

    def __str__(self):
        return f"{self.action} {self.grading_type} for {self.student_id}: {self.old_value} -> {self.new_value}"
