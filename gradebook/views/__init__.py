# Grading views
from .grading import (
    bulk_grade,
    delete_grade,
    grading_list,
    student_grades,
    exercise_grades,
)

# Summary views
from .records import (
    summary_list,
    student_summaries,
    summary_detail,
)
