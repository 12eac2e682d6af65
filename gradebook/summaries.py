"""
Season grade summaries: one row per (student, subject, season label).

Category values are clamped to their caps and the total is recomputed on
every write (see GradeSummary.save).
"""
import logging
from decimal import Decimal

from django.db import transaction

from . import config
from .models import GradeSummary
from .utils import clamp, compute_total, ZERO  # noqa: F401  (compute_total re-exported)

logger = logging.getLogger(__name__)

# grading type -> summary category
CATEGORY_FOR_TYPE = {
    'exercise': 'exercises',
    'monthly_exam': 'monthly_exam',
    'attendance': 'attendance',
    'behaviour': 'behaviour',
    'season_exam': 'season_exam',
}

_CATEGORY_CAPS = {
    'exercises': 'EXERCISES_CAP',
    'monthly_exam': 'MONTHLY_EXAM_CAP',
    'attendance': 'ATTENDANCE_CAP',
    'behaviour': 'BEHAVIOUR_CAP',
    'season_exam': 'SEASON_EXAM_CAP',
}


def _pk(obj):
    return getattr(obj, 'pk', obj)


def category_cap(category):
    try:
        return Decimal(getattr(config, _CATEGORY_CAPS[category]))
    except KeyError:
        raise ValueError(f"Unknown summary category: {category}")


def find_summary(student, subject, season_display):
    return GradeSummary.objects.filter(
        student_id=_pk(student),
        subject_id=_pk(subject),
        season_display=season_display,
    ).first()


def find_by_display_variants(student, subject, variants):
    """First summary matching any of `variants`, in variant order."""
    variants = list(variants)
    if not variants:
        return None
    found = {
        s.season_display: s
        for s in GradeSummary.objects.filter(
            student_id=_pk(student),
            subject_id=_pk(subject),
            season_display__in=variants,
        )
    }
    for label in variants:
        if label in found:
            return found[label]
    return None


def set_monthly_exam(summary, exam_index, value):
    """
    Set monthly exam `exam_index` (0 or 1), padding earlier slots with zeros.
    Does not save.
    """
    if exam_index not in (0, 1):
        raise ValueError(f"Monthly exam index must be 0 or 1, got {exam_index}")
    exams = list(summary.monthly_exam)
    while len(exams) <= exam_index:
        exams.append(ZERO)
    exams[exam_index] = clamp(value, config.MONTHLY_EXAM_CAP)
    summary.monthly_exam = exams
    return summary


def _apply(summary, category, value, exam_index=None):
    if category == 'monthly_exam':
        if exam_index is None:
            raise ValueError("exam_index is required for monthly exams")
        set_monthly_exam(summary, exam_index, value)
    else:
        setattr(summary, category, clamp(value, category_cap(category)))


def upsert_category(student, subject, season_display, category, value, exam_index=None):
    """
    Set one category on the summary for (student, subject, season_display),
    creating a zeroed summary first when none exists.

    Returns (summary, created).
    """
    category_cap(category)
    with transaction.atomic():
        summary = GradeSummary.objects.select_for_update().filter(
            student_id=_pk(student),
            subject_id=_pk(subject),
            season_display=season_display,
        ).first()
        created = summary is None
        if created:
            summary = GradeSummary(
                student_id=_pk(student),
                subject_id=_pk(subject),
                season_display=season_display,
            )
        _apply(summary, category, value, exam_index)
        summary.save()

    if created:
        logger.info(f"Created grade summary {summary.pk} ({season_display}) for student {_pk(student)}")
    return summary, created


def reset_category(summary, category, exam_index=None):
    """
    Zero one category and save. For monthly exams the list is padded with
    zeros up to `exam_index` and that slot is zeroed; it never shrinks.
    """
    if category == 'monthly_exam':
        if exam_index is not None:
            set_monthly_exam(summary, exam_index, ZERO)
    else:
        category_cap(category)
        setattr(summary, category, ZERO)
    summary.save()
    return summary


# --- Read accessors ---

def summaries_for_student(student):
    return GradeSummary.objects.filter(student_id=_pk(student)).select_related('subject')


def list_summaries(student=None, subject=None, season_display=None):
    qs = GradeSummary.objects.select_related('student', 'subject')
    if student is not None:
        qs = qs.filter(student_id=_pk(student))
    if subject is not None:
        qs = qs.filter(subject_id=_pk(subject))
    if season_display:
        qs = qs.filter(season_display=season_display)
    return qs
