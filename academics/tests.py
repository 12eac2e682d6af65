"""
Tests for the academics app.

Focuses on the subject tree used to address exercise grades:
Subject -> Chapter -> Part -> Exercise.
"""
from decimal import Decimal

from django.db import IntegrityError
from django.test import TestCase

from academics.models import Class, Branch, Subject, Chapter, Part, Exercise


class ClassBranchTests(TestCase):
    """Tests for classes and their branches."""

    def setUp(self):
        self.school_class = Class.objects.create(name='Grade 7', level=7)

    def test_branch_str(self):
        branch = Branch.objects.create(school_class=self.school_class, name='A')
        self.assertEqual(str(branch), 'Grade 7 A')

    def test_branch_name_unique_within_class(self):
        Branch.objects.create(school_class=self.school_class, name='A')
        with self.assertRaises(IntegrityError):
            Branch.objects.create(school_class=self.school_class, name='A')

    def test_same_branch_name_in_another_class(self):
        other = Class.objects.create(name='Grade 8', level=8)
        Branch.objects.create(school_class=self.school_class, name='A')
        Branch.objects.create(school_class=other, name='A')
        self.assertEqual(Branch.objects.filter(name='A').count(), 2)


class ExerciseTreeTests(TestCase):
    """Tests for navigating from an exercise to its subject."""

    def setUp(self):
        self.subject = Subject.objects.create(name='Mathematics', short_name='MATH')
        self.chapter = Chapter.objects.create(subject=self.subject, title='Fractions')
        self.part = Part.objects.create(chapter=self.chapter, title='Adding fractions')

    def test_exercise_walks_up_to_subject(self):
        exercise = Exercise.objects.create(part=self.part, title='Exercise 1')
        self.assertEqual(exercise.chapter, self.chapter)
        self.assertEqual(exercise.subject, self.subject)

    def test_default_degree(self):
        exercise = Exercise.objects.create(part=self.part, title='Exercise 1')
        exercise.refresh_from_db()
        self.assertEqual(exercise.degree, Decimal('10'))

    def test_chapter_str(self):
        self.assertEqual(str(self.chapter), 'Mathematics: Fractions')

    def test_ordering(self):
        Exercise.objects.create(part=self.part, title='Second', order=2)
        Exercise.objects.create(part=self.part, title='First', order=1)
        self.assertEqual(
            list(self.part.exercises.values_list('title', flat=True)),
            ['First', 'Second'],
        )
