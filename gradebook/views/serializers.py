"""Plain-dict renderings of gradebook rows for JSON responses."""


def entry_to_dict(entry):
    return {
        'id': str(entry.pk),
        'student_id': entry.student_id,
        'student_name': entry.student.full_name,
        'subject_id': entry.subject_id,
        'subject': entry.subject.name,
        'season_id': entry.season_id,
        'season': str(entry.season),
        'class_id': entry.school_class_id,
        'branch_id': entry.branch_id,
        'grading_type': entry.grading_type,
        'sub_key': entry.sub_key,
        'exercise_id': entry.exercise_id,
        'part_id': entry.part_id,
        'chapter_id': entry.chapter_id,
        'score_cap': str(entry.score_cap),
        'value': str(entry.value),
        'notes': entry.notes,
        'recorded_by': entry.recorded_by.email if entry.recorded_by else None,
        'recorded_at': entry.recorded_at.isoformat(),
    }


def summary_to_dict(summary):
    return {
        'id': str(summary.pk),
        'student_id': summary.student_id,
        'subject_id': summary.subject_id,
        'subject': summary.subject.name,
        'season_display': summary.season_display,
        'season_exam': str(summary.season_exam),
        'exercises': str(summary.exercises),
        'attendance': str(summary.attendance),
        'behaviour': str(summary.behaviour),
        'monthly_exam': [str(v) for v in summary.monthly_exam],
        'total': str(summary.total),
        'notes': summary.notes,
        'updated_at': summary.updated_at.isoformat() if summary.updated_at else None,
    }
