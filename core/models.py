from django.conf import settings
from django.db import models
from django.utils import timezone


class Season(models.Model):
    """
    Represents a grading season (four per school year).

    The stable record that ledger entries point at. Display strings are
    optional and may be configured per language, as a single plain name,
    or not at all (in which case the ordinal position decides the label).
    """
    name = models.CharField(
        max_length=100,
        blank=True,
        help_text="Plain display name, e.g., Season 1"
    )
    name_en = models.CharField(max_length=100, blank=True, verbose_name="Name (English)")
    name_ar = models.CharField(max_length=100, blank=True, verbose_name="Name (Arabic)")
    name_ku = models.CharField(max_length=100, blank=True, verbose_name="Name (Kurdish)")
    description = models.TextField(blank=True)
    order = models.PositiveSmallIntegerField(
        unique=True,
        help_text="Ordinal position in the school year (1-4)"
    )
    is_active = models.BooleanField(default=True)

    # Grade locking
    grades_locked = models.BooleanField(
        default=False,
        help_text="When locked, grades for this season cannot be modified"
    )
    grades_locked_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When grades were locked"
    )
    grades_locked_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='locked_seasons',
        help_text="User who locked the grades"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['order']
        verbose_name = "Season"
        verbose_name_plural = "Seasons"

    def __str__(self):
        return self.name_en or self.name or f"Season #{self.order}"

    @property
    def localized_names(self):
        """Configured per-language names, English first, then Kurdish, then Arabic."""
        return [n for n in (self.name_en, self.name_ku, self.name_ar) if n]

    def lock_grades(self, user):
        """Lock grades for this season."""
        self.grades_locked = True
        self.grades_locked_at = timezone.now()
        self.grades_locked_by = user
        self.save(update_fields=['grades_locked', 'grades_locked_at', 'grades_locked_by', 'updated_at'])

    def unlock_grades(self):
        """Unlock grades for this season."""
        self.grades_locked = False
        self.grades_locked_at = None
        self.grades_locked_by = None
        self.save(update_fields=['grades_locked', 'grades_locked_at', 'grades_locked_by', 'updated_at'])
