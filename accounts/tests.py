from django.test import TestCase
from django.contrib.auth import get_user_model

User = get_user_model()


class UserManagerTests(TestCase):
    """Tests for the custom UserManager."""

    def test_create_user(self):
        """Test creating a regular user with email."""
        user = User.objects.create_user(
            email='test@example.com',
            password='testpass123'
        )
        self.assertEqual(user.email, 'test@example.com')
        self.assertTrue(user.check_password('testpass123'))
        self.assertFalse(user.is_staff)
        self.assertFalse(user.is_superuser)
        self.assertTrue(user.is_active)

    def test_create_user_without_email_raises_error(self):
        """Test that creating a user without email raises ValueError."""
        with self.assertRaises(ValueError):
            User.objects.create_user(email='', password='testpass123')

    def test_create_user_normalizes_email(self):
        """Test that email is normalized (lowercase domain)."""
        user = User.objects.create_user(
            email='test@EXAMPLE.COM',
            password='testpass123'
        )
        self.assertEqual(user.email, 'test@example.com')

    def test_create_superuser(self):
        """Test creating a superuser."""
        user = User.objects.create_superuser(
            email='admin@example.com',
            password='adminpass123'
        )
        self.assertTrue(user.is_staff)
        self.assertTrue(user.is_superuser)

    def test_create_superuser_without_is_staff_raises_error(self):
        """Test that superuser must have is_staff=True."""
        with self.assertRaises(ValueError):
            User.objects.create_superuser(
                email='admin@example.com',
                password='adminpass123',
                is_staff=False
            )

    def test_create_school_admin(self):
        """Test the school admin helper sets the role flag."""
        user = User.objects.create_school_admin(email='head@example.com', password='pass')
        self.assertTrue(user.is_school_admin)
        self.assertFalse(user.is_teacher)
        self.assertFalse(user.is_staff)

    def test_create_teacher(self):
        """Test the teacher helper sets the role flag."""
        user = User.objects.create_teacher(email='teacher@example.com', password='pass')
        self.assertTrue(user.is_teacher)
        self.assertFalse(user.is_school_admin)


class UserRoleTests(TestCase):
    """Tests for role helpers on the User model."""

    def test_role_label(self):
        cases = [
            (User.objects.create_superuser(email='su@example.com', password='x'), 'Super Admin'),
            (User.objects.create_school_admin(email='sa@example.com', password='x'), 'School Admin'),
            (User.objects.create_teacher(email='t@example.com', password='x'), 'Teacher'),
            (User.objects.create_user(email='u@example.com', password='x'), 'User'),
        ]
        for user, label in cases:
            self.assertEqual(user.role_label, label)

    def test_can_grade(self):
        """Only teachers, school admins and superusers may record grades."""
        self.assertTrue(User.objects.create_teacher(email='t@example.com').can_grade)
        self.assertTrue(User.objects.create_school_admin(email='sa@example.com').can_grade)
        self.assertFalse(User.objects.create_user(email='u@example.com').can_grade)

    def test_str(self):
        user = User.objects.create_user(email='someone@example.com')
        self.assertEqual(str(user), 'someone@example.com')
