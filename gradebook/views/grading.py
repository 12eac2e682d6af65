import logging

from django.views.decorators.http import require_GET, require_http_methods, require_POST

from academics.models import Branch, Class, Exercise
from students.models import Student

from .base import (
    admin_required, get_client_ip, json_error, json_success, parse_int,
    parse_json_body, ratelimit, teacher_or_admin_required,
)
from .serializers import entry_to_dict
from .. import config, services
from ..exceptions import ContextValidationError
from ..models import GradingType

logger = logging.getLogger(__name__)


@teacher_or_admin_required
@require_POST
@ratelimit(key='user', rate='300/m')
def bulk_grade(request):
    """
    Grade many students at once.

    Body: the grading context (grading_type, season_id, subject_id, class_id,
    branch_id, plus exercise_id/part_id/chapter_id or sub_key) and
    entries: [{student_id, value, notes}].
    """
    try:
        data = parse_json_body(request)
    except ValueError as exc:
        return json_error(str(exc), status=400, code='invalid_json')

    entries = data.pop('entries', None)
    try:
        result = services.submit_batch(data, entries, request.user)
    except ContextValidationError as exc:
        return json_error(exc.message, status=400, errors=exc.errors, code=exc.code, hint=exc.hint)

    logger.info(
        f"User {request.user.pk} ({get_client_ip(request)}) graded "
        f"{result.created_count + result.updated_count} students ({len(result.errors)} errors)"
    )
    return json_success(result.as_dict(), message='Grades processed successfully')


@admin_required
@require_http_methods(['POST', 'DELETE'])
def delete_grade(request, entry_id):
    result = services.delete_entry(entry_id, user=request.user)
    if not result.ok:
        return json_success(result.as_dict(), message='Grade not found')
    logger.info(f"User {request.user.pk} deleted ledger entry {entry_id}")
    return json_success(result.as_dict(), message='Grade deleted successfully')


@admin_required
@require_GET
def grading_list(request):
    """Paginated listing of every ledger entry."""
    params = request.GET
    filters = {
        'student_id': params.get('student_id'),
        'subject_id': params.get('subject_id'),
        'season_id': params.get('season_id'),
        'grading_type': params.get('grading_type'),
    }
    if filters['grading_type'] and filters['grading_type'] not in GradingType.values:
        return json_error('Unknown grading type', status=400, errors={'grading_type': [filters['grading_type']]})
    for name in ('student_id', 'subject_id', 'season_id'):
        if filters[name] and parse_int(filters[name]) is None:
            return json_error(f'{name} must be an integer', status=400)

    limit = parse_int(params.get('limit'), default=config.LEDGER_LIST_LIMIT, minimum=1)
    offset = parse_int(params.get('skip'), default=0)
    entries, total = services.list_entries(filters, limit=limit, offset=offset)
    return json_success([entry_to_dict(e) for e in entries], total=total)


@teacher_or_admin_required
@require_GET
def student_grades(request, student_id):
    """Ledger history of one student, newest first."""
    try:
        student = Student.objects.get(pk=student_id)
    except Student.DoesNotExist:
        return json_error('Student not found', status=404, code='not_found')

    params = request.GET
    filters = {}
    for name in ('exercise', 'part', 'chapter', 'season', 'subject'):
        raw = params.get(f'{name}_id')
        if raw:
            pk = parse_int(raw)
            if pk is None:
                return json_error(f'{name}_id must be an integer', status=400)
            filters[name] = pk
    grading_type = params.get('grading_type')
    if grading_type:
        if grading_type not in GradingType.values:
            return json_error('Unknown grading type', status=400, errors={'grading_type': [grading_type]})
        filters['grading_type'] = grading_type

    entries = services.student_history(student, **filters)
    return json_success([entry_to_dict(e) for e in entries])


@teacher_or_admin_required
@require_GET
def exercise_grades(request, exercise_id, class_id, branch_id):
    """Every grade recorded for one exercise in one class branch."""
    try:
        exercise = Exercise.objects.get(pk=exercise_id)
        school_class = Class.objects.get(pk=class_id)
        branch = Branch.objects.get(pk=branch_id, school_class=school_class)
    except (Exercise.DoesNotExist, Class.DoesNotExist, Branch.DoesNotExist):
        return json_error('Exercise, class or branch not found', status=404, code='not_found')

    entries = services.exercise_entries(exercise, school_class, branch)
    return json_success([entry_to_dict(e) for e in entries])
