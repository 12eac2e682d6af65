from django.urls import path
from . import views

app_name = 'gradebook'

urlpatterns = [
    # Ledger
    path('grading/', views.grading_list, name='grading_list'),
    path('grading/bulk/', views.bulk_grade, name='bulk_grade'),
    path('grading/<uuid:entry_id>/delete/', views.delete_grade, name='delete_grade'),
    path('grading/student/<int:student_id>/', views.student_grades, name='student_grades'),
    path(
        'grading/exercise/<int:exercise_id>/class/<int:class_id>/branch/<int:branch_id>/',
        views.exercise_grades,
        name='exercise_grades',
    ),

    # Summaries
    path('summaries/', views.summary_list, name='summary_list'),
    path('summaries/student/<int:student_id>/', views.student_summaries, name='student_summaries'),
    path('summaries/<uuid:summary_id>/', views.summary_detail, name='summary_detail'),
]
