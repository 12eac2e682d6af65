from django import forms

from academics.models import Class, Branch, Subject, Chapter, Part, Exercise
from core.models import Season

from .ledger import CategoryTarget, ExerciseTarget, GradingContext, MonthlyExamTarget
from .models import GradingType, MONTHLY_EXAM_KEYS


class GradingContextForm(forms.Form):
    """
    Validates the batch-wide part of a bulk grading request.

    Field names follow the JSON request body.
    """
    grading_type = forms.ChoiceField(choices=GradingType.choices)
    season_id = forms.ModelChoiceField(queryset=Season.objects.all())
    subject_id = forms.ModelChoiceField(queryset=Subject.objects.all())
    class_id = forms.ModelChoiceField(queryset=Class.objects.all())
    branch_id = forms.ModelChoiceField(queryset=Branch.objects.all())

    # exercise only
    exercise_id = forms.ModelChoiceField(queryset=Exercise.objects.select_related('part'), required=False)
    part_id = forms.ModelChoiceField(queryset=Part.objects.select_related('chapter'), required=False)
    chapter_id = forms.ModelChoiceField(queryset=Chapter.objects.all(), required=False)

    # monthly_exam only
    sub_key = forms.CharField(max_length=2, required=False)

    recorded_at = forms.DateTimeField(required=False)

    def clean_sub_key(self):
        return (self.cleaned_data.get('sub_key') or '').strip()

    def clean(self):
        cleaned_data = super().clean()
        grading_type = cleaned_data.get('grading_type')
        season = cleaned_data.get('season_id')
        subject = cleaned_data.get('subject_id')
        school_class = cleaned_data.get('class_id')
        branch = cleaned_data.get('branch_id')
        sub_key = cleaned_data.get('sub_key', '')

        if school_class and branch and branch.school_class_id != school_class.pk:
            self.add_error('branch_id', 'Branch does not belong to the selected class.')

        if season and season.grades_locked:
            self.add_error('season_id', f'Grades for {season} are locked.')

        if grading_type == GradingType.EXERCISE:
            self._clean_exercise_hierarchy(subject)
        elif grading_type == GradingType.MONTHLY_EXAM:
            if sub_key not in MONTHLY_EXAM_KEYS:
                self.add_error('sub_key', 'Monthly exams need exam number "1" or "2".')

        if grading_type and grading_type != GradingType.MONTHLY_EXAM and sub_key:
            self.add_error('sub_key', 'Only monthly exams take an exam number.')

        return cleaned_data

    def _clean_exercise_hierarchy(self, subject):
        exercise = self.cleaned_data.get('exercise_id')
        part = self.cleaned_data.get('part_id')
        chapter = self.cleaned_data.get('chapter_id')

        missing = [
            name for name, value in
            (('exercise_id', exercise), ('part_id', part), ('chapter_id', chapter))
            if value is None
        ]
        for name in missing:
            if name not in self.errors:
                self.add_error(name, 'Required for exercise grading.')
        if missing:
            return

        if exercise.part_id != part.pk:
            self.add_error('exercise_id', 'Exercise does not belong to the selected part.')
        if part.chapter_id != chapter.pk:
            self.add_error('part_id', 'Part does not belong to the selected chapter.')
        if subject and chapter.subject_id != subject.pk:
            self.add_error('chapter_id', 'Chapter does not belong to the selected subject.')

    def get_context(self):
        """Build the GradingContext from a valid form."""
        data = self.cleaned_data
        grading_type = data['grading_type']
        if grading_type == GradingType.EXERCISE:
            target = ExerciseTarget(
                exercise=data['exercise_id'],
                part=data['part_id'],
                chapter=data['chapter_id'],
            )
        elif grading_type == GradingType.MONTHLY_EXAM:
            target = MonthlyExamTarget(sub_key=data['sub_key'])
        else:
            target = CategoryTarget(grading_type=grading_type)

        return GradingContext(
            subject=data['subject_id'],
            season=data['season_id'],
            school_class=data['class_id'],
            branch=data['branch_id'],
            target=target,
            recorded_at=data.get('recorded_at'),
        )
