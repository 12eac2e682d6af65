"""
Grade ledger: one row per recorded grade.

A grading context names what is being graded (subject, season, class,
branch) and a target that depends on the grading type:

* ExerciseTarget    - one exercise, unique per (student, exercise)
* MonthlyExamTarget - monthly exam "1" or "2"
* CategoryTarget    - attendance, behaviour or season exam

Upserts are keyed by the target so re-grading the same thing updates the
existing row instead of adding a new one.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import Sum
from django.utils import timezone

from . import config
from .exceptions import LedgerValidationError
from .models import GradeLedgerEntry, GradingType, LedgerAuditLog
from .utils import clamp, to_decimal, ZERO

logger = logging.getLogger(__name__)


CATEGORY_CAPS = {
    'attendance': 'ATTENDANCE_CAP',
    'behaviour': 'BEHAVIOUR_CAP',
    'season_exam': 'SEASON_EXAM_CAP',
}


@dataclass(frozen=True)
class ExerciseTarget:
    exercise: object
    part: object
    chapter: object
    grading_type: str = field(default=GradingType.EXERCISE.value, init=False)
    sub_key: str = field(default='', init=False)

    @property
    def score_cap(self):
        degree = Decimal(self.exercise.degree or 0)
        return degree if degree > 0 else Decimal(config.DEFAULT_EXERCISE_WEIGHT)

    def identity(self, context, student):
        return {'student': student, 'exercise': self.exercise, 'grading_type': self.grading_type}

    def extra_fields(self):
        return {'exercise': self.exercise, 'part': self.part, 'chapter': self.chapter}


@dataclass(frozen=True)
class MonthlyExamTarget:
    sub_key: str
    grading_type: str = field(default=GradingType.MONTHLY_EXAM.value, init=False)

    @property
    def score_cap(self):
        return Decimal(config.MONTHLY_EXAM_CAP)

    @property
    def exam_index(self):
        """Position in the summary's monthly exam list (0 or 1)."""
        return int(self.sub_key) - 1

    def identity(self, context, student):
        return {
            'student': student,
            'subject': context.subject,
            'season': context.season,
            'grading_type': self.grading_type,
            'sub_key': self.sub_key,
        }

    def extra_fields(self):
        return {}


@dataclass(frozen=True)
class CategoryTarget:
    grading_type: str
    sub_key: str = field(default='', init=False)

    @property
    def score_cap(self):
        return Decimal(getattr(config, CATEGORY_CAPS[self.grading_type]))

    def identity(self, context, student):
        return {
            'student': student,
            'subject': context.subject,
            'season': context.season,
            'grading_type': self.grading_type,
            'sub_key': '',
        }

    def extra_fields(self):
        return {}


@dataclass(frozen=True)
class GradingContext:
    """Validated, batch-wide description of what is being graded."""
    subject: object
    season: object
    school_class: object
    branch: object
    target: object
    recorded_at: Optional[object] = None

    @property
    def grading_type(self):
        return self.target.grading_type


@dataclass(frozen=True)
class LedgerKey:
    """Identity of a ledger entry captured before it is deleted."""
    entry_id: object
    student_id: int
    subject_id: int
    season_id: int
    grading_type: str
    sub_key: str
    value: Decimal

    @property
    def exam_index(self):
        return int(self.sub_key) - 1 if self.sub_key else None


def _audit(entry, action, user, old_value=None, new_value=None):
    LedgerAuditLog.objects.create(
        entry=entry if action != 'DELETE' else None,
        student_id=entry.student_id,
        subject_id=entry.subject_id,
        season_id=entry.season_id,
        grading_type=entry.grading_type,
        sub_key=entry.sub_key,
        user=user,
        action=action,
        old_value=old_value,
        new_value=new_value,
    )


def clean_value(value, cap):
    """
    Validate a submitted value and clamp it to `cap`.

    Values above the cap are clamped; negative and non-numeric values raise
    LedgerValidationError.
    """
    try:
        number = to_decimal(value)
    except ValueError as exc:
        raise LedgerValidationError(str(exc), hint='Enter a number between 0 and the maximum score.')
    if number < 0:
        raise LedgerValidationError(
            f'Value ({number}) cannot be negative',
            hint='Enter a number between 0 and the maximum score.',
        )
    return clamp(number, cap)


def upsert(context, student, value, recorded_by, notes=None):
    """
    Create or update the ledger entry for `student` under `context`.

    Returns (entry, created).
    """
    target = context.target
    cap = target.score_cap
    value = clean_value(value, cap)
    recorded_at = context.recorded_at or timezone.now()
    lookup = target.identity(context, student)

    with transaction.atomic():
        entry = GradeLedgerEntry.objects.select_for_update().filter(**lookup).first()
        created = entry is None
        if created:
            fields = {
                'subject': context.subject,
                'season': context.season,
                'school_class': context.school_class,
                'branch': context.branch,
                **lookup,
                **target.extra_fields(),
            }
            entry = GradeLedgerEntry(
                score_cap=cap,
                value=value,
                recorded_by=recorded_by,
                recorded_at=recorded_at,
                notes=notes or '',
                **fields,
            )
            try:
                with transaction.atomic():
                    entry.save()
            except IntegrityError:
                # Lost a race with a concurrent insert for the same key
                entry = GradeLedgerEntry.objects.select_for_update().get(**lookup)
                created = False

        if created:
            _audit(entry, 'CREATE', recorded_by, new_value=value)
            logger.debug(f"Created {entry.grading_type} entry {entry.pk} for student {student.pk}: {value}")
            return entry, True

        old_value = entry.value
        moved = (entry.subject_id, entry.season_id) != (context.subject.pk, context.season.pk)
        # entries follow the context they were last graded under
        entry.subject = context.subject
        entry.season = context.season
        entry.school_class = context.school_class
        entry.branch = context.branch
        entry.value = value
        entry.score_cap = cap
        entry.recorded_by = recorded_by
        entry.recorded_at = recorded_at
        if notes:
            entry.notes = notes
        entry.save(update_fields=[
            'subject', 'season', 'school_class', 'branch',
            'value', 'score_cap', 'recorded_by', 'recorded_at', 'notes', 'updated_at',
        ])
        if moved:
            logger.info(f"Moved {entry.grading_type} entry {entry.pk} to subject {entry.subject_id}, season {entry.season_id}")
        if old_value != value:
            _audit(entry, 'UPDATE', recorded_by, old_value=old_value, new_value=value)
        logger.debug(f"Updated {entry.grading_type} entry {entry.pk} for student {student.pk}: {old_value} -> {value}")
        return entry, False


def exercise_entry_envelope(student, exercise):
    """(subject_id, season_id) of the student's existing entry for `exercise`, or None."""
    return GradeLedgerEntry.objects.filter(
        student=student,
        exercise=exercise,
        grading_type=GradingType.EXERCISE.value,
    ).values_list('subject_id', 'season_id').first()


def sum_exercise_entries(student, subject, season):
    """Capped sum of every exercise grade for (student, subject, season)."""
    total = GradeLedgerEntry.objects.filter(
        student=student,
        subject=subject,
        season=season,
        grading_type=GradingType.EXERCISE.value,
    ).aggregate(total=Sum('value'))['total'] or ZERO
    return clamp(total, config.EXERCISES_CAP)


def remove(entry_id, user=None):
    """
    Delete a ledger entry and return its LedgerKey, or None if it does not exist.
    """
    with transaction.atomic():
        try:
            entry = GradeLedgerEntry.objects.select_for_update().filter(pk=entry_id).first()
        except ValidationError:
            return None
        if entry is None:
            return None
        key = LedgerKey(
            entry_id=entry.pk,
            student_id=entry.student_id,
            subject_id=entry.subject_id,
            season_id=entry.season_id,
            grading_type=entry.grading_type,
            sub_key=entry.sub_key,
            value=entry.value,
        )
        _audit(entry, 'DELETE', user, old_value=entry.value)
        entry.delete()
    logger.info(f"Deleted {key.grading_type} entry {key.entry_id} for student {key.student_id}")
    return key


# --- Read accessors ---

def _base_queryset():
    return GradeLedgerEntry.objects.select_related(
        'student', 'subject', 'season', 'school_class', 'branch',
        'exercise', 'part', 'chapter', 'recorded_by',
    )


def student_history(student, exercise=None, part=None, chapter=None,
                    season=None, subject=None, grading_type=None):
    """All ledger entries for a student, newest first, optionally filtered."""
    filters = {
        'exercise': exercise,
        'part': part,
        'chapter': chapter,
        'season': season,
        'subject': subject,
        'grading_type': grading_type,
    }
    qs = _base_queryset().filter(student=student)
    return qs.filter(**{k: v for k, v in filters.items() if v is not None})


def exercise_entries(exercise, school_class, branch):
    """Entries recorded for one exercise in one class branch."""
    return _base_queryset().filter(
        exercise=exercise,
        school_class=school_class,
        branch=branch,
    ).order_by('student__last_name', 'student__first_name')


def list_entries(filters=None, limit=None, offset=0):
    """
    Paginated listing across all students.

    `filters` maps any of student_id, subject_id, season_id, grading_type
    to a value. Returns (entries, total).
    """
    allowed = ('student_id', 'subject_id', 'season_id', 'grading_type')
    filters = {k: v for k, v in (filters or {}).items() if k in allowed and v not in (None, '')}
    limit = min(limit or config.LEDGER_LIST_LIMIT, config.LEDGER_LIST_MAX_LIMIT)
    offset = max(offset or 0, 0)

    qs = _base_queryset().filter(**filters)
    total = qs.count()
    return list(qs[offset:offset + limit]), total

