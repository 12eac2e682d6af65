import json
import uuid
from decimal import Decimal
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import TestCase, override_settings
from django.urls import reverse

from academics.models import Class, Branch, Subject, Chapter, Part, Exercise
from core.models import Season
from students.models import Student

from . import ledger, seasons, services, summaries
from .exceptions import ContextValidationError, LedgerValidationError
from .ledger import CategoryTarget, ExerciseTarget, GradingContext, MonthlyExamTarget
from .models import GradeLedgerEntry, GradeSummary, LedgerAuditLog
from .tasks import reconcile_grade_summaries
from .utils import compute_total, to_decimal


User = get_user_model()


class GradebookTestMixin:
    """Shared school fixture: one class with two branches, one subject tree, five students."""

    def setUp(self):
        self.admin = User.objects.create_school_admin(email='admin@school.test', password='pass')
        self.teacher = User.objects.create_teacher(email='teacher@school.test', password='pass')
        self.season = Season.objects.create(order=1)
        self.subject = Subject.objects.create(name='Mathematics')
        self.school_class = Class.objects.create(name='Grade 7', level=7)
        self.branch = Branch.objects.create(school_class=self.school_class, name='A')
        self.chapter = Chapter.objects.create(subject=self.subject, title='Fractions')
        self.part = Part.objects.create(chapter=self.chapter, title='Adding fractions')
        self.exercises = [
            Exercise.objects.create(part=self.part, title=f'Exercise {i}', order=i)
            for i in range(1, 5)
        ]
        self.students = [
            Student.objects.create(
                first_name=f'Student{i}',
                last_name='Test',
                admission_number=f'ADM{i:03d}',
                current_class=self.school_class,
                current_branch=self.branch,
            )
            for i in range(1, 6)
        ]
        self.student = self.students[0]

    def context_data(self, grading_type, **extra):
        data = {
            'grading_type': grading_type,
            'season_id': self.season.pk,
            'subject_id': self.subject.pk,
            'class_id': self.school_class.pk,
            'branch_id': self.branch.pk,
        }
        data.update(extra)
        return data

    def exercise_context(self, exercise=None):
        exercise = exercise or self.exercises[0]
        return self.context_data(
            'exercise',
            exercise_id=exercise.pk,
            part_id=self.part.pk,
            chapter_id=self.chapter.pk,
        )

    def make_context(self, target, season=None):
        return GradingContext(
            subject=self.subject,
            season=season or self.season,
            school_class=self.school_class,
            branch=self.branch,
            target=target,
        )

    def summary_for(self, student=None):
        return GradeSummary.objects.get(student=student or self.student, subject=self.subject)


class SeasonLabelTest(TestCase):
    """Tests for season display label resolution."""

    def test_unconfigured_season_uses_canonical_labels(self):
        season = Season.objects.create(order=2)
        self.assertEqual(
            seasons.variants_for(season),
            ['Season 2', 'الموسم الثاني', 'وەرزی دووەم'],
        )

    def test_configured_names_come_first_in_language_order(self):
        season = Season.objects.create(
            order=1, name='Season 1', name_en='Season 1',
            name_ar='الموسم الأول', name_ku='وەرزی یەکەم',
        )
        self.assertEqual(
            seasons.variants_for(season),
            ['Season 1', 'وەرزی یەکەم', 'الموسم الأول'],
        )

    def test_unrecognised_names_are_ignored(self):
        season = Season.objects.create(order=3, name='Autumn term', name_en='Term three')
        self.assertEqual(seasons.variants_for(season), list(seasons.canonical_labels(3)))

    def test_plain_name_only(self):
        season = Season.objects.create(order=4, name='الموسم الرابع')
        self.assertEqual(
            seasons.variants_for(season),
            ['الموسم الرابع', 'Season 4', 'وەرزی چوارەم'],
        )

    def test_canonical_labels_follow_configured_ones(self):
        season = Season.objects.create(order=1, name_ku='وەرزی یەکەم')
        self.assertEqual(
            seasons.variants_for(season),
            ['وەرزی یەکەم', 'Season 1', 'الموسم الأول'],
        )

    def test_out_of_range_order_has_no_variants(self):
        season = Season.objects.create(order=7)
        self.assertEqual(seasons.variants_for(season), [])

    def test_ordinal_for_label(self):
        self.assertEqual(seasons.ordinal_for_label('وەرزی سێیەم'), 3)
        self.assertEqual(seasons.ordinal_for_label('Season 4'), 4)
        self.assertIsNone(seasons.ordinal_for_label('Season 5'))
        self.assertTrue(seasons.is_season_label('الموسم الأول'))
        self.assertFalse(seasons.is_season_label(''))

    def test_resolve_summary_tries_variants_in_order(self):
        season = Season.objects.create(order=1)
        calls = []

        def lookup(student, subject, label):
            calls.append(label)
            return 'hit' if label == 'الموسم الأول' else None

        self.assertEqual(seasons.resolve_summary(lookup, 1, 1, season), 'hit')
        self.assertEqual(calls, ['Season 1', 'الموسم الأول'])

    def test_resolve_summary_miss(self):
        season = Season.objects.create(order=1)
        self.assertIsNone(seasons.resolve_summary(lambda *args: None, 1, 1, season))


class ScoreArithmeticTest(TestCase):
    """Tests for total computation and value coercion."""

    def test_full_marks(self):
        total = compute_total(60, 10, 5, 5, [Decimal('20'), Decimal('20')])
        self.assertEqual(total, Decimal('100.00'))

    def test_monthly_contribution_is_mean_of_two(self):
        self.assertEqual(compute_total(monthly_exams=[Decimal('10'), Decimal('15')]), Decimal('12.50'))

    def test_single_monthly_exam_counts_in_full(self):
        self.assertEqual(compute_total(season_exam=40, monthly_exams=[Decimal('18')]), Decimal('58.00'))

    def test_empty_monthly_list_contributes_nothing(self):
        self.assertEqual(compute_total(30, 7, 4, 3, []), Decimal('44.00'))

    def test_total_is_capped(self):
        self.assertEqual(compute_total(90, 10, 5, 5, [20]), Decimal('100.00'))

    def test_to_decimal(self):
        self.assertEqual(to_decimal('7.5'), Decimal('7.5'))
        self.assertEqual(to_decimal(3), Decimal('3'))
        self.assertEqual(to_decimal(2.25), Decimal('2.25'))
        for bad in (None, '', 'abc', True, [1], 'NaN'):
            with self.assertRaises(ValueError):
                to_decimal(bad)


class GradeLedgerStoreTest(GradebookTestMixin, TestCase):
    """Tests for ledger upserts, rollups and removal."""

    def test_upsert_creates_then_updates(self):
        context = self.make_context(CategoryTarget('attendance'))
        entry, created = ledger.upsert(context, self.student, 3, self.teacher)
        self.assertTrue(created)

        again, created = ledger.upsert(context, self.student, 4, self.admin)
        self.assertFalse(created)
        self.assertEqual(again.pk, entry.pk)
        self.assertEqual(GradeLedgerEntry.objects.count(), 1)
        again.refresh_from_db()
        self.assertEqual(again.value, Decimal('4'))
        self.assertEqual(again.recorded_by, self.admin)

    def test_values_above_cap_are_clamped(self):
        entry, _ = ledger.upsert(self.make_context(CategoryTarget('attendance')), self.student, 25, self.teacher)
        self.assertEqual(entry.value, Decimal('5'))
        self.assertEqual(entry.score_cap, Decimal('5'))

    def test_category_caps(self):
        cases = [
            (CategoryTarget('behaviour'), Decimal('5')),
            (CategoryTarget('season_exam'), Decimal('60')),
            (MonthlyExamTarget('1'), Decimal('20')),
        ]
        for target, cap in cases:
            entry, _ = ledger.upsert(self.make_context(target), self.student, 1000, self.teacher)
            self.assertEqual(entry.value, cap)

    def test_negative_and_non_numeric_values_are_rejected(self):
        context = self.make_context(CategoryTarget('behaviour'))
        for bad in (-1, 'ten', None):
            with self.assertRaises(LedgerValidationError):
                ledger.upsert(context, self.student, bad, self.teacher)
        self.assertFalse(GradeLedgerEntry.objects.exists())

    def test_exercise_update_moves_envelope(self):
        second = Season.objects.create(order=2)
        other_branch = Branch.objects.create(school_class=self.school_class, name='B')
        target = ExerciseTarget(exercise=self.exercises[0], part=self.part, chapter=self.chapter)
        entry, _ = ledger.upsert(self.make_context(target), self.student, 4, self.teacher)
        self.assertEqual(
            ledger.exercise_entry_envelope(self.student, self.exercises[0]),
            (self.subject.pk, self.season.pk),
        )

        context = GradingContext(
            subject=self.subject, season=second, school_class=self.school_class,
            branch=other_branch, target=target,
        )
        moved, created = ledger.upsert(context, self.student, 6, self.teacher)
        self.assertFalse(created)
        self.assertEqual(moved.pk, entry.pk)
        moved.refresh_from_db()
        self.assertEqual((moved.season, moved.branch), (second, other_branch))
        self.assertEqual(ledger.sum_exercise_entries(self.student, self.subject, self.season), Decimal('0'))
        self.assertEqual(ledger.sum_exercise_entries(self.student, self.subject, second), Decimal('6'))

    def test_exercise_cap_follows_degree(self):
        exercise = Exercise.objects.create(part=self.part, title='Short', degree=Decimal('4'))
        target = ExerciseTarget(exercise=exercise, part=self.part, chapter=self.chapter)
        entry, _ = ledger.upsert(self.make_context(target), self.student, 9, self.teacher)
        self.assertEqual(entry.value, Decimal('4'))

    def test_exercise_without_degree_uses_default_weight(self):
        exercise = Exercise.objects.create(part=self.part, title='Ungraded', degree=Decimal('0'))
        target = ExerciseTarget(exercise=exercise, part=self.part, chapter=self.chapter)
        entry, _ = ledger.upsert(self.make_context(target), self.student, 12, self.teacher)
        self.assertEqual(entry.score_cap, Decimal('10'))
        self.assertEqual(entry.value, Decimal('10'))

    def test_notes_kept_unless_provided(self):
        context = self.make_context(CategoryTarget('behaviour'))
        ledger.upsert(context, self.student, 3, self.teacher, notes='Helpful in class')
        entry, _ = ledger.upsert(context, self.student, 4, self.teacher)
        self.assertEqual(entry.notes, 'Helpful in class')
        entry, _ = ledger.upsert(context, self.student, 4, self.teacher, notes='Distracted')
        self.assertEqual(entry.notes, 'Distracted')

    def test_monthly_exams_are_separate_entries(self):
        ledger.upsert(self.make_context(MonthlyExamTarget('1')), self.student, 12, self.teacher)
        ledger.upsert(self.make_context(MonthlyExamTarget('2')), self.student, 16, self.teacher)
        self.assertEqual(GradeLedgerEntry.objects.filter(grading_type='monthly_exam').count(), 2)

    def test_sum_exercise_entries_is_capped(self):
        for exercise, value in zip(self.exercises, [4, 3, 3, 5]):
            target = ExerciseTarget(exercise=exercise, part=self.part, chapter=self.chapter)
            ledger.upsert(self.make_context(target), self.student, value, self.teacher)
        self.assertEqual(ledger.sum_exercise_entries(self.student, self.subject, self.season), Decimal('10'))

    def test_remove_returns_key(self):
        entry, _ = ledger.upsert(self.make_context(MonthlyExamTarget('2')), self.student, 11, self.teacher)
        key = ledger.remove(entry.pk, user=self.admin)
        self.assertEqual(key.grading_type, 'monthly_exam')
        self.assertEqual(key.exam_index, 1)
        self.assertEqual(key.student_id, self.student.pk)
        self.assertIsNone(ledger.remove(entry.pk))
        self.assertIsNone(ledger.remove('not-a-uuid'))

    def test_audit_trail(self):
        context = self.make_context(CategoryTarget('attendance'))
        entry, _ = ledger.upsert(context, self.student, 2, self.teacher)
        ledger.upsert(context, self.student, 2, self.teacher)
        ledger.upsert(context, self.student, 4, self.teacher)
        ledger.remove(entry.pk, user=self.admin)

        self.assertEqual(LedgerAuditLog.objects.count(), 3)
        logs = {log.action: log for log in LedgerAuditLog.objects.all()}
        self.assertEqual(logs['CREATE'].new_value, Decimal('2'))
        self.assertEqual((logs['UPDATE'].old_value, logs['UPDATE'].new_value), (Decimal('2'), Decimal('4')))
        self.assertEqual(logs['DELETE'].old_value, Decimal('4'))
        self.assertIsNone(logs['DELETE'].entry)
        self.assertEqual(logs['DELETE'].user, self.admin)

    def test_list_entries_paginates(self):
        for student in self.students:
            ledger.upsert(self.make_context(CategoryTarget('behaviour')), student, 3, self.teacher)
        page, total = ledger.list_entries({'grading_type': 'behaviour'}, limit=2, offset=1)
        self.assertEqual(total, 5)
        self.assertEqual(len(page), 2)


class GradeSummaryStoreTest(GradebookTestMixin, TestCase):
    """Tests for summary category writes."""

    def test_upsert_category_creates_zeroed_summary(self):
        summary, created = summaries.upsert_category(self.student, self.subject, 'Season 1', 'season_exam', 45)
        self.assertTrue(created)
        self.assertEqual(summary.season_exam, Decimal('45'))
        self.assertEqual(summary.exercises, Decimal('0'))
        self.assertEqual(summary.monthly_exam, [])
        self.assertEqual(summary.total, Decimal('45'))

        summary, created = summaries.upsert_category(self.student, self.subject, 'Season 1', 'attendance', 9)
        self.assertFalse(created)
        self.assertEqual(summary.attendance, Decimal('5'))
        self.assertEqual(summary.total, Decimal('50'))

    def test_monthly_exam_pads_with_zeros(self):
        summary, _ = summaries.upsert_category(
            self.student, self.subject, 'Season 1', 'monthly_exam', 18, exam_index=1
        )
        self.assertEqual(summary.monthly_exam, [Decimal('0'), Decimal('18')])
        self.assertEqual(summary.total, Decimal('9'))

    def test_reset_monthly_keeps_length(self):
        summary, _ = summaries.upsert_category(self.student, self.subject, 'Season 1', 'monthly_exam', 10, exam_index=0)
        summaries.upsert_category(self.student, self.subject, 'Season 1', 'monthly_exam', 20, exam_index=1)
        summary.refresh_from_db()
        summaries.reset_category(summary, 'monthly_exam', exam_index=1)
        summary.refresh_from_db()
        self.assertEqual(summary.monthly_exam, [Decimal('10'), Decimal('0')])
        self.assertEqual(summary.total, Decimal('5'))

    def test_reset_pads_short_monthly_list(self):
        summary, _ = summaries.upsert_category(self.student, self.subject, 'Season 1', 'monthly_exam', 15, exam_index=0)
        summaries.reset_category(summary, 'monthly_exam', exam_index=1)
        summary.refresh_from_db()
        self.assertEqual(summary.monthly_exam, [Decimal('15'), Decimal('0')])
        self.assertEqual(summary.total, Decimal('7.50'))

    def test_unknown_category(self):
        with self.assertRaises(ValueError):
            summaries.upsert_category(self.student, self.subject, 'Season 1', 'homework', 3)

    def test_find_by_display_variants(self):
        summaries.upsert_category(self.student, self.subject, 'Season 1', 'behaviour', 4)
        found = summaries.find_by_display_variants(
            self.student, self.subject, ['وەرزی یەکەم', 'الموسم الأول', 'Season 1']
        )
        self.assertEqual(found.season_display, 'Season 1')
        self.assertIsNone(summaries.find_by_display_variants(self.student, self.subject, ['Season 2']))

    def test_total_recomputed_on_save(self):
        summary, _ = summaries.upsert_category(self.student, self.subject, 'Season 1', 'exercises', 8)
        summary.season_exam = Decimal('50')
        summary.save(update_fields=['season_exam'])
        summary.refresh_from_db()
        self.assertEqual(summary.total, Decimal('58'))


class SubmitBatchTest(GradebookTestMixin, TestCase):
    """Tests for bulk grading through the service layer."""

    def submit(self, context, entries, user=None):
        return services.submit_batch(context, entries, user or self.teacher)

    def test_resubmitting_is_idempotent(self):
        entries = [{'student_id': self.student.pk, 'value': 4}]
        first = self.submit(self.exercise_context(), entries)
        second = self.submit(self.exercise_context(), entries)

        self.assertEqual(first.created_count, 1)
        self.assertEqual(second.updated_count, 1)
        self.assertEqual(GradeLedgerEntry.objects.count(), 1)
        self.assertEqual(GradeSummary.objects.count(), 1)
        self.assertEqual(self.summary_for().exercises, Decimal('4'))

    def test_exercise_rollup_is_recomputed(self):
        for exercise, value in zip(self.exercises, [4, 3, 3]):
            self.submit(self.exercise_context(exercise), [{'student_id': self.student.pk, 'value': value}])
        self.assertEqual(self.summary_for().exercises, Decimal('10'))

        self.submit(self.exercise_context(self.exercises[3]), [{'student_id': self.student.pk, 'value': 5}])
        summary = self.summary_for()
        self.assertEqual(summary.exercises, Decimal('10'))
        self.assertEqual(summary.total, Decimal('10'))

        # re-grading lowers the rollup
        self.submit(self.exercise_context(self.exercises[3]), [{'student_id': self.student.pk, 'value': 0}])
        self.submit(self.exercise_context(self.exercises[0]), [{'student_id': self.student.pk, 'value': 1}])
        self.assertEqual(self.summary_for().exercises, Decimal('7'))

    def test_attendance_is_clamped(self):
        self.submit(self.context_data('attendance'), [{'student_id': self.student.pk, 'value': 25}])
        entry = GradeLedgerEntry.objects.get()
        self.assertEqual(entry.value, Decimal('5'))
        self.assertEqual(self.summary_for().attendance, Decimal('5'))

    def test_all_categories_feed_total(self):
        sid = self.student.pk
        self.submit(self.context_data('season_exam'), [{'student_id': sid, 'value': 50}])
        self.submit(self.context_data('attendance'), [{'student_id': sid, 'value': 5}])
        self.submit(self.context_data('behaviour'), [{'student_id': sid, 'value': 4}])
        self.submit(self.context_data('monthly_exam', sub_key='1'), [{'student_id': sid, 'value': 16}])
        self.submit(self.context_data('monthly_exam', sub_key='2'), [{'student_id': sid, 'value': 20}])
        self.submit(self.exercise_context(), [{'student_id': sid, 'value': 8}])

        summary = self.summary_for()
        self.assertEqual(summary.monthly_exam, [Decimal('16'), Decimal('20')])
        self.assertEqual(summary.total, Decimal('85'))

    def test_second_monthly_exam_first(self):
        sid = self.student.pk
        self.submit(self.context_data('monthly_exam', sub_key='2'), [{'student_id': sid, 'value': 18}])
        self.assertEqual(self.summary_for().monthly_exam, [Decimal('0'), Decimal('18')])

        self.submit(self.context_data('monthly_exam', sub_key='1'), [{'student_id': sid, 'value': 12}])
        summary = self.summary_for()
        self.assertEqual(summary.monthly_exam, [Decimal('12'), Decimal('18')])
        self.assertEqual(summary.total, Decimal('15'))

    def test_partial_batch(self):
        entries = [{'student_id': s.pk, 'value': 3} for s in self.students[:4]]
        entries.append({'student_id': 999999, 'value': 3})
        result = self.submit(self.context_data('behaviour'), entries)

        self.assertEqual(result.created_count, 4)
        self.assertEqual(len(result.errors), 1)
        self.assertEqual(result.errors[0]['student_id'], 999999)
        self.assertEqual(result.errors[0]['code'], 'not_found')
        self.assertEqual(GradeSummary.objects.count(), 4)
        for student in self.students[:4]:
            summary = self.summary_for(student)
            self.assertEqual(summary.behaviour, Decimal('3'))
            self.assertEqual(summary.total, Decimal('3'))

    def test_missing_student_or_value(self):
        result = self.submit(self.context_data('behaviour'), [
            {'value': 3},
            {'student_id': self.student.pk},
            {'student_id': self.students[1].pk, 'value': 'abc'},
            'not-an-object',
        ])
        self.assertEqual(result.created_count, 0)
        self.assertEqual(len(result.errors), 4)
        self.assertTrue(all(e['code'] == 'invalid_value' for e in result.errors))
        self.assertFalse(GradeLedgerEntry.objects.exists())

    def test_existing_summary_found_under_another_label(self):
        GradeSummary.objects.create(student=self.student, subject=self.subject, season_display='الموسم الأول')
        self.submit(self.context_data('behaviour'), [{'student_id': self.student.pk, 'value': 4}])

        self.assertEqual(GradeSummary.objects.count(), 1)
        summary = self.summary_for()
        self.assertEqual(summary.season_display, 'الموسم الأول')
        self.assertEqual(summary.behaviour, Decimal('4'))

    def test_new_summary_uses_first_variant(self):
        self.season.name_ku = 'وەرزی یەکەم'
        self.season.save()
        self.submit(self.context_data('behaviour'), [{'student_id': self.student.pk, 'value': 2}])
        self.assertEqual(self.summary_for().season_display, 'وەرزی یەکەم')

    def test_configuring_a_label_keeps_existing_summary(self):
        sid = self.student.pk
        self.submit(self.context_data('attendance'), [{'student_id': sid, 'value': 4}])
        self.season.name_ku = 'وەرزی یەکەم'
        self.season.save()
        self.submit(self.context_data('behaviour'), [{'student_id': sid, 'value': 3}])

        self.assertEqual(GradeSummary.objects.count(), 1)
        summary = self.summary_for()
        self.assertEqual(summary.season_display, 'Season 1')
        self.assertEqual(summary.attendance, Decimal('4'))
        self.assertEqual(summary.behaviour, Decimal('3'))
        self.assertEqual(summary.total, Decimal('7'))

    def test_regrading_exercise_in_another_season_moves_entry(self):
        second = Season.objects.create(order=2)
        sid = self.student.pk
        self.submit(self.exercise_context(), [{'student_id': sid, 'value': 4}])
        self.submit(self.exercise_context(self.exercises[1]), [{'student_id': sid, 'value': 2}])
        self.submit(
            self.exercise_context() | {'season_id': second.pk},
            [{'student_id': sid, 'value': 9}],
        )

        moved = GradeLedgerEntry.objects.get(exercise=self.exercises[0])
        self.assertEqual(moved.season, second)
        self.assertEqual(moved.value, Decimal('9'))

        first_summary = GradeSummary.objects.get(student=self.student, season_display='Season 1')
        second_summary = GradeSummary.objects.get(student=self.student, season_display='Season 2')
        self.assertEqual(first_summary.exercises, ledger.sum_exercise_entries(self.student, self.subject, self.season))
        self.assertEqual(first_summary.exercises, Decimal('2'))
        self.assertEqual(first_summary.total, Decimal('2'))
        self.assertEqual(second_summary.exercises, Decimal('9'))
        self.assertEqual(services.reconcile_summaries()['repaired'], 0)

    def test_season_without_label_fails_per_student(self):
        season = Season.objects.create(order=9)
        result = self.submit(
            self.context_data('attendance', season_id=season.pk),
            [{'student_id': self.student.pk, 'value': 3}],
        )
        self.assertEqual(result.errors[0]['code'], 'season_out_of_range')
        self.assertFalse(GradeLedgerEntry.objects.exists())

    def test_recorded_at_applies_to_whole_batch(self):
        data = self.context_data('behaviour', recorded_at='2026-03-01T09:30:00Z')
        self.submit(data, [{'student_id': s.pk, 'value': 3} for s in self.students[:2]])
        stamps = set(GradeLedgerEntry.objects.values_list('recorded_at', flat=True))
        self.assertEqual(len(stamps), 1)
        stamp = stamps.pop()
        self.assertEqual((stamp.year, stamp.month, stamp.day, stamp.hour), (2026, 3, 1, 9))

    def test_accepts_prebuilt_context(self):
        context = self.make_context(MonthlyExamTarget('1'))
        result = self.submit(context, [{'student_id': self.student.pk, 'value': 14}])
        self.assertEqual(result.created_count, 1)
        self.assertEqual(self.summary_for().monthly_exam, [Decimal('14')])


class ContextValidationTest(GradebookTestMixin, TestCase):
    """Invalid contexts reject the whole batch before anything is written."""

    def assertRejected(self, data, field, entries=None):
        entries = entries if entries is not None else [{'student_id': self.student.pk, 'value': 3}]
        with self.assertRaises(ContextValidationError) as ctx:
            services.submit_batch(data, entries, self.teacher)
        self.assertIn(field, ctx.exception.errors)
        self.assertFalse(GradeLedgerEntry.objects.exists())
        self.assertFalse(GradeSummary.objects.exists())

    def test_unknown_grading_type(self):
        self.assertRejected(self.context_data('homework'), 'grading_type')

    def test_monthly_exam_requires_sub_key(self):
        self.assertRejected(self.context_data('monthly_exam'), 'sub_key')
        self.assertRejected(self.context_data('monthly_exam', sub_key='3'), 'sub_key')

    def test_sub_key_only_for_monthly_exams(self):
        self.assertRejected(self.context_data('attendance', sub_key='1'), 'sub_key')

    def test_exercise_requires_hierarchy(self):
        self.assertRejected(self.context_data('exercise', exercise_id=self.exercises[0].pk), 'part_id')

    def test_exercise_must_belong_to_part(self):
        other_part = Part.objects.create(chapter=self.chapter, title='Subtracting fractions')
        data = self.exercise_context()
        data['part_id'] = other_part.pk
        self.assertRejected(data, 'exercise_id')

    def test_chapter_must_belong_to_subject(self):
        other_subject = Subject.objects.create(name='Science')
        self.assertRejected(self.exercise_context() | {'subject_id': other_subject.pk}, 'chapter_id')

    def test_branch_must_belong_to_class(self):
        other_class = Class.objects.create(name='Grade 8', level=8)
        other_branch = Branch.objects.create(school_class=other_class, name='A')
        self.assertRejected(self.context_data('behaviour', branch_id=other_branch.pk), 'branch_id')

    def test_unknown_records(self):
        self.assertRejected(self.context_data('behaviour', season_id=404), 'season_id')
        self.assertRejected(self.context_data('behaviour', subject_id=404), 'subject_id')

    def test_locked_season(self):
        self.season.lock_grades(self.admin)
        self.assertRejected(self.context_data('behaviour'), 'season_id')

    def test_empty_batch(self):
        self.assertRejected(self.context_data('behaviour'), 'entries', entries=[])

    @override_settings(GRADEBOOK_MAX_BATCH_SIZE=2)
    def test_batch_size_limit(self):
        entries = [{'student_id': s.pk, 'value': 1} for s in self.students[:3]]
        self.assertRejected(self.context_data('behaviour'), 'entries', entries=entries)


class DeleteEntryTest(GradebookTestMixin, TestCase):
    """Tests for deleting ledger entries and repairing summaries."""

    def grade(self, context, value, student=None):
        student = student or self.student
        services.submit_batch(context, [{'student_id': student.pk, 'value': value}], self.teacher)
        return GradeLedgerEntry.objects.filter(student=student).order_by('-created_at').first()

    def test_delete_recomputes_exercise_rollup(self):
        entries = [
            self.grade(self.exercise_context(exercise), value)
            for exercise, value in zip(self.exercises, [4, 3, 3])
        ]
        self.assertEqual(self.summary_for().exercises, Decimal('10'))

        result = services.delete_entry(entries[2].pk, user=self.admin)
        self.assertTrue(result.ok)
        self.assertTrue(result.summary_updated)
        self.assertEqual(self.summary_for().exercises, Decimal('7'))

        again = services.delete_entry(entries[2].pk, user=self.admin)
        self.assertFalse(again.ok)
        self.assertEqual(self.summary_for().exercises, Decimal('7'))

    def test_delete_resets_direct_category(self):
        entry = self.grade(self.context_data('season_exam'), 48)
        self.grade(self.context_data('behaviour'), 5)
        services.delete_entry(entry.pk)
        summary = self.summary_for()
        self.assertEqual(summary.season_exam, Decimal('0'))
        self.assertEqual(summary.total, Decimal('5'))

    def test_delete_monthly_exam_keeps_position(self):
        first = self.grade(self.context_data('monthly_exam', sub_key='1'), 10)
        self.grade(self.context_data('monthly_exam', sub_key='2'), 20)
        services.delete_entry(first.pk)
        self.assertEqual(self.summary_for().monthly_exam, [Decimal('0'), Decimal('20')])

    def test_delete_falls_back_to_latest_summary(self):
        entry = self.grade(self.context_data('attendance'), 4)
        GradeSummary.objects.filter(student=self.student).update(season_display='Season 3')

        result = services.delete_entry(entry.pk)
        self.assertTrue(result.summary_updated)
        summary = self.summary_for()
        self.assertEqual(summary.season_display, 'Season 3')
        self.assertEqual(summary.attendance, Decimal('0'))

    def test_delete_second_exam_on_short_fallback_summary(self):
        entry, _ = ledger.upsert(self.make_context(MonthlyExamTarget('2')), self.student, 12, self.teacher)
        GradeSummary.objects.create(
            student=self.student, subject=self.subject,
            season_display='Season 3', monthly_exam_1=Decimal('15'),
        )

        result = services.delete_entry(entry.pk)
        self.assertTrue(result.summary_updated)
        summary = self.summary_for()
        self.assertEqual(summary.monthly_exam, [Decimal('15'), Decimal('0')])
        self.assertEqual(summary.total, Decimal('7.50'))

    def test_delete_without_summary(self):
        entry, _ = ledger.upsert(self.make_context(CategoryTarget('behaviour')), self.student, 3, self.teacher)
        result = services.delete_entry(entry.pk)
        self.assertTrue(result.ok)
        self.assertFalse(result.summary_updated)
        self.assertFalse(GradeSummary.objects.exists())

    def test_exercise_delete_creates_missing_summary(self):
        entries = []
        for exercise, value in zip(self.exercises[:2], [6, 2]):
            target = ExerciseTarget(exercise=exercise, part=self.part, chapter=self.chapter)
            entries.append(ledger.upsert(self.make_context(target), self.student, value, self.teacher)[0])

        result = services.delete_entry(entries[0].pk)
        self.assertTrue(result.summary_updated)
        summary = self.summary_for()
        self.assertEqual(summary.season_display, 'Season 1')
        self.assertEqual(summary.exercises, Decimal('2'))


class ReconcileTest(GradebookTestMixin, TestCase):
    """Tests for rebuilding summaries from the ledger."""

    def setUp(self):
        super().setUp()
        sid = self.student.pk
        services.submit_batch(self.exercise_context(), [{'student_id': sid, 'value': 6}], self.teacher)
        services.submit_batch(self.context_data('season_exam'), [{'student_id': sid, 'value': 40}], self.teacher)
        services.submit_batch(
            self.context_data('monthly_exam', sub_key='1'), [{'student_id': sid, 'value': 14}], self.teacher
        )

    def test_consistent_summaries_are_left_alone(self):
        stats = services.reconcile_summaries()
        self.assertEqual(stats, {'checked': 1, 'repaired': 0, 'failed': 0})

    def test_drifted_summary_is_repaired(self):
        GradeSummary.objects.filter(student=self.student).update(
            exercises=Decimal('0'), season_exam=Decimal('12'), monthly_exam_1=None, total=Decimal('3')
        )
        stats = services.reconcile_summaries(subject=self.subject.pk)
        self.assertEqual(stats['repaired'], 1)

        summary = self.summary_for()
        self.assertEqual(summary.exercises, Decimal('6'))
        self.assertEqual(summary.season_exam, Decimal('40'))
        self.assertEqual(summary.monthly_exam, [Decimal('14')])
        self.assertEqual(summary.total, Decimal('60'))

    def test_missing_summary_is_recreated(self):
        GradeSummary.objects.all().delete()
        summary, changed = services.rebuild_summary(self.student, self.subject, self.season)
        self.assertTrue(changed)
        self.assertEqual(summary.season_display, 'Season 1')
        self.assertEqual(summary.total, Decimal('60'))

    def test_filters(self):
        other = Subject.objects.create(name='History')
        self.assertEqual(services.reconcile_summaries(subject=other.pk)['checked'], 0)
        self.assertEqual(services.reconcile_summaries(student=self.students[1].pk)['checked'], 0)

    def test_task(self):
        GradeSummary.objects.filter(student=self.student).update(exercises=Decimal('1'))
        result = reconcile_grade_summaries.apply(kwargs={'season_id': self.season.pk}).get()
        self.assertEqual(result['repaired'], 1)
        self.assertEqual(self.summary_for().exercises, Decimal('6'))

    def test_management_command(self):
        GradeSummary.objects.filter(student=self.student).update(behaviour=Decimal('5'))
        out = StringIO()
        call_command('reconcile_grade_summaries', f'--season={self.season.pk}', stdout=out)
        self.assertIn('repaired 1', out.getvalue())
        self.assertEqual(self.summary_for().behaviour, Decimal('0'))


class GradingAPITest(GradebookTestMixin, TestCase):
    """Tests for the JSON endpoints."""

    def setUp(self):
        super().setUp()
        self.plain_user = User.objects.create_user(email='parent@school.test', password='pass')

    def post_json(self, url, body):
        return self.client.post(url, data=json.dumps(body), content_type='application/json')

    def bulk(self, context, entries):
        return self.post_json(reverse('gradebook:bulk_grade'), {**context, 'entries': entries})

    def test_requires_authentication(self):
        response = self.bulk(self.context_data('behaviour'), [])
        self.assertEqual(response.status_code, 401)
        self.assertFalse(response.json()['success'])

    def test_requires_teacher_or_admin(self):
        self.client.force_login(self.plain_user)
        response = self.client.get(reverse('gradebook:summary_list'))
        self.assertEqual(response.status_code, 403)

    def test_access_follows_can_grade(self):
        superuser = User.objects.create_superuser(email='root@school.test', password='pass')
        cases = [(superuser, 200), (self.admin, 200), (self.teacher, 200), (self.plain_user, 403)]
        for user, status in cases:
            self.assertEqual(user.can_grade, status == 200)
            self.client.force_login(user)
            self.assertEqual(self.client.get(reverse('gradebook:summary_list')).status_code, status)

    def test_bulk_grade(self):
        self.client.force_login(self.teacher)
        entries = [{'student_id': s.pk, 'value': 4, 'notes': 'On time'} for s in self.students]
        response = self.bulk(self.context_data('attendance'), entries)

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body['success'])
        self.assertEqual(body['data']['created_count'], 5)
        self.assertEqual(body['data']['errors'], [])
        self.assertEqual(GradeLedgerEntry.objects.filter(notes='On time').count(), 5)

    def test_bulk_grade_reports_per_student_errors(self):
        self.client.force_login(self.teacher)
        response = self.bulk(self.context_data('behaviour'), [
            {'student_id': self.student.pk, 'value': 3},
            {'student_id': 424242, 'value': 3},
        ])
        self.assertEqual(response.status_code, 200)
        data = response.json()['data']
        self.assertEqual(data['created_count'], 1)
        self.assertEqual(data['errors'][0]['student_id'], 424242)

    def test_bulk_grade_invalid_context(self):
        self.client.force_login(self.teacher)
        response = self.bulk(self.context_data('monthly_exam'), [{'student_id': self.student.pk, 'value': 3}])
        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertFalse(body['success'])
        self.assertIn('sub_key', body['errors'])

    def test_bulk_grade_invalid_json(self):
        self.client.force_login(self.teacher)
        response = self.client.post(
            reverse('gradebook:bulk_grade'), data='{oops', content_type='application/json'
        )
        self.assertEqual(response.status_code, 400)

    def test_bulk_grade_requires_post(self):
        self.client.force_login(self.teacher)
        response = self.client.get(reverse('gradebook:bulk_grade'))
        self.assertEqual(response.status_code, 405)

    def test_delete_is_admin_only(self):
        entry, _ = ledger.upsert(self.make_context(CategoryTarget('behaviour')), self.student, 3, self.teacher)
        url = reverse('gradebook:delete_grade', args=[entry.pk])

        self.client.force_login(self.teacher)
        self.assertEqual(self.client.delete(url).status_code, 403)

        self.client.force_login(self.admin)
        response = self.client.delete(url)
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()['data']['ok'])
        self.assertFalse(GradeLedgerEntry.objects.exists())

    def test_delete_missing_entry(self):
        self.client.force_login(self.admin)
        response = self.client.post(reverse('gradebook:delete_grade', args=[uuid.uuid4()]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['data'], {'ok': False, 'summary_updated': False})

    def test_grading_list(self):
        for student in self.students:
            ledger.upsert(self.make_context(CategoryTarget('behaviour')), student, 2, self.teacher)
        ledger.upsert(self.make_context(CategoryTarget('attendance')), self.student, 2, self.teacher)

        self.client.force_login(self.teacher)
        self.assertEqual(self.client.get(reverse('gradebook:grading_list')).status_code, 403)

        self.client.force_login(self.admin)
        response = self.client.get(reverse('gradebook:grading_list'), {
            'grading_type': 'behaviour', 'limit': 2, 'skip': 2,
        })
        body = response.json()
        self.assertEqual(body['total'], 5)
        self.assertEqual(len(body['data']), 2)

        response = self.client.get(reverse('gradebook:grading_list'), {'student_id': self.student.pk})
        self.assertEqual(response.json()['total'], 2)

        response = self.client.get(reverse('gradebook:grading_list'), {'grading_type': 'homework'})
        self.assertEqual(response.status_code, 400)

    def test_student_grades(self):
        services.submit_batch(self.exercise_context(), [{'student_id': self.student.pk, 'value': 7}], self.teacher)
        services.submit_batch(self.context_data('behaviour'), [{'student_id': self.student.pk, 'value': 4}], self.teacher)

        self.client.force_login(self.teacher)
        url = reverse('gradebook:student_grades', args=[self.student.pk])
        self.assertEqual(len(self.client.get(url).json()['data']), 2)

        data = self.client.get(url, {'exercise_id': self.exercises[0].pk}).json()['data']
        self.assertEqual(len(data), 1)
        self.assertEqual(data[0]['value'], '7.00')

        missing = reverse('gradebook:student_grades', args=[999999])
        self.assertEqual(self.client.get(missing).status_code, 404)

    def test_exercise_grades(self):
        entries = [{'student_id': s.pk, 'value': 5} for s in self.students[:3]]
        services.submit_batch(self.exercise_context(), entries, self.teacher)

        self.client.force_login(self.teacher)
        url = reverse('gradebook:exercise_grades', args=[self.exercises[0].pk, self.school_class.pk, self.branch.pk])
        self.assertEqual(len(self.client.get(url).json()['data']), 3)

        other_branch = Branch.objects.create(school_class=self.school_class, name='B')
        url = reverse('gradebook:exercise_grades', args=[self.exercises[0].pk, self.school_class.pk, other_branch.pk])
        self.assertEqual(self.client.get(url).json()['data'], [])

    def test_summaries(self):
        services.submit_batch(self.context_data('season_exam'), [
            {'student_id': s.pk, 'value': 30} for s in self.students[:2]
        ], self.teacher)

        self.client.force_login(self.teacher)
        listing = self.client.get(reverse('gradebook:summary_list'), {'season_display': 'Season 1'}).json()
        self.assertEqual(len(listing['data']), 2)

        response = self.client.get(reverse('gradebook:student_summaries', args=[self.student.pk]))
        data = response.json()['data']
        self.assertEqual(len(data), 1)
        self.assertEqual(data[0]['total'], '30.00')

        detail = self.client.get(reverse('gradebook:summary_detail', args=[data[0]['id']]))
        self.assertEqual(detail.json()['data']['season_exam'], '30.00')

        missing = self.client.get(reverse('gradebook:summary_detail', args=[uuid.uuid4()]))
        self.assertEqual(missing.status_code, 404)

        bad_label = self.client.get(reverse('gradebook:summary_list'), {'season_display': 'Spring'})
        self.assertEqual(bad_label.status_code, 400)
