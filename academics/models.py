from django.db import models


class Class(models.Model):
    """
    Represents a class/grade level, e.g., Grade 7.
    Students are grouped into branches within a class.
    """
    name = models.CharField(max_length=50, unique=True)
    level = models.PositiveSmallIntegerField(default=1, help_text="Grade level number")
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['level', 'name']
        verbose_name = "Class"
        verbose_name_plural = "Classes"

    def __str__(self):
        return self.name


class Branch(models.Model):
    """A section of a class (e.g., 7A, 7B)."""
    school_class = models.ForeignKey(
        Class,
        on_delete=models.CASCADE,
        related_name='branches'
    )
    name = models.CharField(max_length=20, help_text="e.g., A, B, Gold")

    class Meta:
        ordering = ['school_class', 'name']
        verbose_name = "Branch"
        verbose_name_plural = "Branches"
        unique_together = ['school_class', 'name']

    def __str__(self):
        return f"{self.school_class.name} {self.name}"


class Subject(models.Model):
    """
    Represents a subject taught at the school.
    """
    name = models.CharField(max_length=100, unique=True)
    short_name = models.CharField(max_length=20, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['name']
        verbose_name = "Subject"
        verbose_name_plural = "Subjects"

    def __str__(self):
        return self.name


class Chapter(models.Model):
    subject = models.ForeignKey(Subject, on_delete=models.CASCADE, related_name='chapters')
    title = models.CharField(max_length=200)
    order = models.PositiveIntegerField(default=1)

    class Meta:
        ordering = ['subject', 'order']

    def __str__(self):
        return f"{self.subject.name}: {self.title}"


class Part(models.Model):
    chapter = models.ForeignKey(Chapter, on_delete=models.CASCADE, related_name='parts')
    title = models.CharField(max_length=200)
    order = models.PositiveIntegerField(default=1)

    class Meta:
        ordering = ['chapter', 'order']

    def __str__(self):
        return self.title


class Exercise(models.Model):
    """
    A gradable exercise inside a part of a chapter.

    `degree` is the exercise weight, i.e. the maximum score a student
    can earn on it.
    """
    part = models.ForeignKey(Part, on_delete=models.CASCADE, related_name='exercises')
    title = models.CharField(max_length=200)
    degree = models.DecimalField(
        max_digits=6,
        decimal_places=2,
        default=10,
        help_text="Maximum score for this exercise"
    )
    order = models.PositiveIntegerField(default=1)

    class Meta:
        ordering = ['part', 'order']

    def __str__(self):
        return self.title

    @property
    def chapter(self):
        return self.part.chapter

    @property
    def subject(self):
        return self.part.chapter.subject
