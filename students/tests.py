from django.db.models import ProtectedError
from django.test import TestCase

from academics.models import Class, Branch
from students.models import Student


class StudentModelTests(TestCase):
    """Tests for the Student model."""

    def setUp(self):
        self.school_class = Class.objects.create(name='Grade 7', level=7)
        self.branch = Branch.objects.create(school_class=self.school_class, name='A')
        self.student = Student.objects.create(
            first_name='Lana',
            last_name='Aziz',
            admission_number='ADM001',
            current_class=self.school_class,
            current_branch=self.branch,
        )

    def test_full_name(self):
        self.assertEqual(self.student.full_name, 'Lana Aziz')

    def test_full_name_with_other_names(self):
        self.student.other_names = 'Karim'
        self.assertEqual(self.student.full_name, 'Lana Karim Aziz')

    def test_str(self):
        self.assertEqual(str(self.student), 'Lana Aziz (ADM001)')

    def test_default_status(self):
        self.assertEqual(self.student.status, Student.Status.ACTIVE)

    def test_class_cannot_be_deleted_with_students(self):
        with self.assertRaises(ProtectedError):
            self.school_class.delete()

    def test_branch_delete_clears_student_branch(self):
        self.branch.delete()
        self.student.refresh_from_db()
        self.assertIsNone(self.student.current_branch)
