from django.views.decorators.http import require_GET

from students.models import Student

from .base import json_error, json_success, parse_int, teacher_or_admin_required
from .serializers import summary_to_dict
from .. import services
from ..models import GradeSummary
from ..seasons import is_season_label


@teacher_or_admin_required
@require_GET
def summary_list(request):
    params = request.GET
    season_display = params.get('season_display') or None
    if season_display and not is_season_label(season_display):
        return json_error('Unknown season label', status=400, errors={'season_display': [season_display]})

    lookups = {}
    for name in ('student', 'subject'):
        raw = params.get(f'{name}_id')
        if raw:
            pk = parse_int(raw)
            if pk is None:
                return json_error(f'{name}_id must be an integer', status=400)
            lookups[name] = pk

    summaries = services.list_summaries(season_display=season_display, **lookups)
    return json_success([summary_to_dict(s) for s in summaries])


@teacher_or_admin_required
@require_GET
def student_summaries(request, student_id):
    if not Student.objects.filter(pk=student_id).exists():
        return json_error('Student not found', status=404, code='not_found')
    summaries = services.summaries_for_student(student_id)
    return json_success([summary_to_dict(s) for s in summaries])


@teacher_or_admin_required
@require_GET
def summary_detail(request, summary_id):
    try:
        summary = GradeSummary.objects.select_related('subject').get(pk=summary_id)
    except GradeSummary.DoesNotExist:
        return json_error('Summary not found', status=404, code='not_found')
    return json_success(summary_to_dict(summary))
