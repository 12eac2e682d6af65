"""
Grading service layer.

Writes go through here so the season summaries always agree with the
ledger: every ledger upsert or delete is followed by a recompute of the
affected summary category and its total.
"""
import logging
from dataclasses import dataclass, field

from django.db import DatabaseError, transaction

from core.models import Season
from students.models import Student

from . import config, ledger, summaries
from .exceptions import (
    ContextValidationError, EntityNotFoundError, GradingError,
    LedgerValidationError, OrdinalOutOfRange,
)
from .forms import GradingContextForm
from .ledger import GradingContext
from .models import GradeLedgerEntry, GradeSummary, GradingType, MONTHLY_EXAM_KEYS
from .seasons import resolve_summary, variants_for
from .summaries import CATEGORY_FOR_TYPE
from .utils import clamp

logger = logging.getLogger(__name__)

# Read accessors, re-exported for callers of the service layer
student_history = ledger.student_history
exercise_entries = ledger.exercise_entries
list_entries = ledger.list_entries
summaries_for_student = summaries.summaries_for_student
list_summaries = summaries.list_summaries


@dataclass
class BatchResult:
    created: list = field(default_factory=list)
    updated: list = field(default_factory=list)
    errors: list = field(default_factory=list)

    @property
    def created_count(self):
        return len(self.created)

    @property
    def updated_count(self):
        return len(self.updated)

    def as_dict(self):
        return {
            'created_count': self.created_count,
            'updated_count': self.updated_count,
            'created': self.created,
            'updated': self.updated,
            'errors': self.errors,
        }


@dataclass
class DeleteResult:
    ok: bool
    summary_updated: bool = False

    def as_dict(self):
        return {'ok': self.ok, 'summary_updated': self.summary_updated}


def _form_errors(form):
    return {name: [str(e) for e in errors] for name, errors in form.errors.items()}


def validate_context(data):
    """
    Validate the batch-wide grading context and return a GradingContext.

    Raises ContextValidationError when anything is missing, inconsistent
    or points at a record that does not exist.
    """
    form = GradingContextForm(data)
    if not form.is_valid():
        errors = _form_errors(form)
        logger.info(f"Rejected grading context: {errors}")
        raise ContextValidationError(
            'Invalid grading context',
            errors=errors,
            hint='Check the season, subject, class, branch and grading type.',
        )
    return form.get_context()


def _validate_batch_size(entries):
    if not isinstance(entries, (list, tuple)) or not entries:
        raise ContextValidationError(
            'At least one student must be graded',
            errors={'entries': ['This field is required.']},
        )
    max_size = config.MAX_BATCH_SIZE
    if len(entries) > max_size:
        raise ContextValidationError(
            f'Too many entries in one batch ({len(entries)} > {max_size})',
            errors={'entries': [f'At most {max_size} entries per batch.']},
        )


def _summary_label(student, subject, season):
    """
    Label of the summary to write to: the existing summary's label if one is
    found under any variant, otherwise the first variant.
    """
    variants = variants_for(season)
    if not variants:
        raise OrdinalOutOfRange(
            f'Season {season} (order {season.order}) has no display label',
            hint='Season order must be between 1 and 4.',
        )
    existing = resolve_summary(summaries.find_summary, student, subject, season)
    return existing.season_display if existing else variants[0]


def _write_summary(context, student, entry):
    category = CATEGORY_FOR_TYPE[context.grading_type]
    label = _summary_label(student, context.subject, context.season)

    if context.grading_type == GradingType.EXERCISE:
        value = ledger.sum_exercise_entries(student, context.subject, context.season)
    else:
        value = entry.value
    exam_index = context.target.exam_index if context.grading_type == GradingType.MONTHLY_EXAM else None

    summary, _ = summaries.upsert_category(
        student, context.subject, label, category, value, exam_index=exam_index
    )
    return summary


def _refresh_exercise_rollup(student, subject, season):
    """
    Rewrite the exercise rollup of the summary for (student, subject, season)
    from the ledger. A missing summary is created only when the rollup is
    positive. Returns the summary or None.
    """
    total = ledger.sum_exercise_entries(student, subject, season)
    summary = resolve_summary(summaries.find_summary, student, subject, season)
    if summary is not None:
        label = summary.season_display
    elif total > 0 and variants_for(season):
        label = variants_for(season)[0]
    else:
        return None
    summary, _ = summaries.upsert_category(student, subject, label, 'exercises', total)
    return summary


def _load_student(student_id):
    try:
        return Student.objects.get(pk=student_id)
    except (Student.DoesNotExist, ValueError, TypeError):
        raise EntityNotFoundError(f'Student {student_id} not found')


def _grade_student(context, item, recorded_by):
    student_id = item.get('student_id')
    value = item.get('value')
    if student_id in (None, '') or value is None:
        raise LedgerValidationError('Student ID and value are required')

    student = _load_student(student_id)
    with transaction.atomic():
        previous = None
        if context.grading_type == GradingType.EXERCISE:
            previous = ledger.exercise_entry_envelope(student, context.target.exercise)
        entry, created = ledger.upsert(
            context, student, value, recorded_by, notes=item.get('notes')
        )
        summary = _write_summary(context, student, entry)
        if previous and previous != (context.subject.pk, context.season.pk):
            subject_id, season_id = previous
            _refresh_exercise_rollup(student, subject_id, Season.objects.get(pk=season_id))

    return created, {
        'student_id': student.pk,
        'student_name': student.full_name,
        'entry_id': str(entry.pk),
        'value': str(entry.value),
        'summary_id': str(summary.pk),
    }


def submit_batch(context, entries, recorded_by):
    """
    Grade many students under one context.

    `context` is a GradingContext or the raw request data to validate.
    `entries` is a list of {student_id, value, notes}. Each student is
    committed on its own; failures are collected in BatchResult.errors and
    do not stop the rest of the batch.
    """
    if not isinstance(context, GradingContext):
        context = validate_context(context)
    elif context.season.grades_locked:
        raise ContextValidationError(
            f'Grades for {context.season} are locked',
            errors={'season_id': [f'Grades for {context.season} are locked.']},
        )
    _validate_batch_size(entries)

    result = BatchResult()
    for item in entries:
        if not isinstance(item, dict):
            result.errors.append({
                'student_id': 'unknown',
                'code': LedgerValidationError.code,
                'message': 'Each entry must be an object',
            })
            continue
        try:
            created, row = _grade_student(context, item, recorded_by)
        except GradingError as exc:
            logger.warning(f"Grading failed for student {item.get('student_id')}: {exc.message}")
            result.errors.append({'student_id': item.get('student_id') or 'unknown', **exc.as_dict()})
            continue
        except DatabaseError as exc:
            logger.error(f"Database error grading student {item.get('student_id')}: {exc}", exc_info=True)
            result.errors.append({
                'student_id': item.get('student_id') or 'unknown',
                'code': 'database_error',
                'message': 'Could not save this grade',
            })
            continue
        (result.created if created else result.updated).append(row)

    logger.info(
        f"Batch {context.grading_type} for {context.subject} / {context.season}: "
        f"{result.created_count} created, {result.updated_count} updated, {len(result.errors)} failed"
    )
    return result


def _fallback_summary(student_id, subject_id):
    return GradeSummary.objects.filter(
        student_id=student_id, subject_id=subject_id
    ).order_by('-updated_at').first()


def delete_entry(entry_id, user=None):
    """
    Delete a ledger entry and bring its summary back in line.

    Exercise deletes rewrite the exercise rollup; other types zero their
    category (or monthly exam slot). When no summary matches the season's
    labels, the most recently updated summary for the student and subject
    is repaired instead.
    """
    with transaction.atomic():
        key = ledger.remove(entry_id, user=user)
        if key is None:
            logger.info(f"Delete requested for missing ledger entry {entry_id}")
            return DeleteResult(ok=False)

        season = Season.objects.get(pk=key.season_id)
        category = CATEGORY_FOR_TYPE[key.grading_type]
        summary = resolve_summary(summaries.find_summary, key.student_id, key.subject_id, season)
        if summary is None:
            summary = _fallback_summary(key.student_id, key.subject_id)
            if summary is not None:
                logger.warning(
                    f"No summary labelled for season {season.pk}; repairing "
                    f"'{summary.season_display}' summary {summary.pk} for student {key.student_id}"
                )

        if key.grading_type == GradingType.EXERCISE:
            if summary is None:
                refreshed = _refresh_exercise_rollup(key.student_id, key.subject_id, season)
                return DeleteResult(ok=True, summary_updated=refreshed is not None)
            total = ledger.sum_exercise_entries(key.student_id, key.subject_id, season)
            summaries.upsert_category(key.student_id, key.subject_id, summary.season_display, category, total)
            return DeleteResult(ok=True, summary_updated=True)

        if summary is None:
            return DeleteResult(ok=True, summary_updated=False)
        summaries.reset_category(summary, category, exam_index=key.exam_index)
        return DeleteResult(ok=True, summary_updated=True)


def rebuild_summary(student, subject, season):
    """
    Recompute every category of one summary from the ledger.

    Returns (summary, changed). The summary is None when the ledger holds
    nothing for the triple and no summary exists.
    """
    variants = variants_for(season)
    if not variants:
        raise OrdinalOutOfRange(f'Season {season} (order {season.order}) has no display label')

    entries = GradeLedgerEntry.objects.filter(student=student, subject=subject, season=season)
    direct = {
        e.grading_type: e.value
        for e in entries.exclude(grading_type__in=[GradingType.EXERCISE, GradingType.MONTHLY_EXAM])
    }
    monthly = {
        e.sub_key: e.value
        for e in entries.filter(grading_type=GradingType.MONTHLY_EXAM)
    }

    summary = resolve_summary(summaries.find_summary, student, subject, season)
    if summary is None:
        if not entries.exists():
            return None, False
        summary = GradeSummary(
            student_id=getattr(student, 'pk', student),
            subject_id=getattr(subject, 'pk', subject),
            season_display=variants[0],
        )

    before = (
        summary.exercises, summary.attendance, summary.behaviour,
        summary.season_exam, list(summary.monthly_exam), summary.total,
    )

    summary.exercises = ledger.sum_exercise_entries(student, subject, season)
    for grading_type in ('attendance', 'behaviour', 'season_exam'):
        value = direct.get(grading_type, 0)
        setattr(summary, CATEGORY_FOR_TYPE[grading_type], clamp(value, summaries.category_cap(grading_type)))

    length = len(summary.monthly_exam)
    for position, sub_key in enumerate(MONTHLY_EXAM_KEYS):
        if sub_key in monthly:
            length = max(length, position + 1)
    summary.monthly_exam = [
        clamp(monthly.get(sub_key, 0), config.MONTHLY_EXAM_CAP)
        for sub_key in MONTHLY_EXAM_KEYS[:length]
    ]
    summary.recompute_total()

    after = (
        summary.exercises, summary.attendance, summary.behaviour,
        summary.season_exam, list(summary.monthly_exam), summary.total,
    )
    changed = summary._state.adding or before != after
    if changed:
        if not summary._state.adding:
            logger.warning(f"Summary {summary.pk} drifted from the ledger; before={before} after={after}")
        summary.save()
    return summary, changed


def reconcile_summaries(subject=None, season=None, student=None):
    """
    Rebuild the summary of every (student, subject, season) present in the
    ledger, optionally narrowed. Returns counts.
    """
    triples = GradeLedgerEntry.objects.all()
    if subject is not None:
        triples = triples.filter(subject=subject)
    if season is not None:
        triples = triples.filter(season=season)
    if student is not None:
        triples = triples.filter(student=student)
    triples = triples.values_list('student_id', 'subject_id', 'season_id').distinct().order_by()

    seasons = {s.pk: s for s in Season.objects.all()}
    stats = {'checked': 0, 'repaired': 0, 'failed': 0}
    for student_id, subject_id, season_id in triples:
        stats['checked'] += 1
        try:
            with transaction.atomic():
                _, changed = rebuild_summary(student_id, subject_id, seasons[season_id])
        except OrdinalOutOfRange as exc:
            stats['failed'] += 1
            logger.error(f"Cannot rebuild summary for student {student_id}, subject {subject_id}: {exc.message}")
            continue
        if changed:
            stats['repaired'] += 1

    logger.info(f"Reconciled grade summaries: {stats}")
    return stats
