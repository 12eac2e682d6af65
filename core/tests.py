from django.test import TestCase
from django.contrib.auth import get_user_model

from core.models import Season

User = get_user_model()


class SeasonModelTests(TestCase):
    """Tests for the Season model."""

    def test_str_prefers_english_name(self):
        season = Season.objects.create(order=1, name='S1', name_en='Season 1')
        self.assertEqual(str(season), 'Season 1')

    def test_str_falls_back_to_plain_name_then_order(self):
        self.assertEqual(str(Season.objects.create(order=2, name='Second')), 'Second')
        self.assertEqual(str(Season.objects.create(order=3)), 'Season #3')

    def test_localized_names_order(self):
        """Test localized names are listed English, Kurdish, then Arabic."""
        season = Season.objects.create(
            order=1, name_en='Season 1', name_ar='الموسم الأول', name_ku='وەرزی یەکەم'
        )
        self.assertEqual(season.localized_names, ['Season 1', 'وەرزی یەکەم', 'الموسم الأول'])

    def test_localized_names_skip_blanks(self):
        season = Season.objects.create(order=4, name_ar='الموسم الرابع')
        self.assertEqual(season.localized_names, ['الموسم الرابع'])

    def test_ordering(self):
        Season.objects.create(order=3)
        Season.objects.create(order=1)
        Season.objects.create(order=2)
        self.assertEqual(list(Season.objects.values_list('order', flat=True)), [1, 2, 3])


class SeasonLockTests(TestCase):
    """Tests for locking season grades."""

    def setUp(self):
        self.user = User.objects.create_school_admin(email='admin@example.com', password='pass')
        self.season = Season.objects.create(order=1)

    def test_lock_grades(self):
        self.season.lock_grades(self.user)
        self.season.refresh_from_db()
        self.assertTrue(self.season.grades_locked)
        self.assertIsNotNone(self.season.grades_locked_at)
        self.assertEqual(self.season.grades_locked_by, self.user)

    def test_unlock_grades(self):
        self.season.lock_grades(self.user)
        self.season.unlock_grades()
        self.season.refresh_from_db()
        self.assertFalse(self.season.grades_locked)
        self.assertIsNone(self.season.grades_locked_at)
        self.assertIsNone(self.season.grades_locked_by)
