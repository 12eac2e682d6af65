"""
Management command to rebuild grade summaries from the grade ledger.

Usage:
    # Check and repair every summary
    python manage.py reconcile_grade_summaries

    # Narrow to one subject and season
    python manage.py reconcile_grade_summaries --subject=3 --season=1

    # Hand the work to a Celery worker
    python manage.py reconcile_grade_summaries --async
"""
from django.core.management.base import BaseCommand, CommandError

from core.models import Season
from gradebook.services import reconcile_summaries
from gradebook.tasks import reconcile_grade_summaries


class Command(BaseCommand):
    help = 'Rebuild grade summaries from the grade ledger and repair any drift'

    def add_arguments(self, parser):
        parser.add_argument('--subject', type=int, help='Subject ID to limit the rebuild to')
        parser.add_argument('--season', type=int, help='Season ID to limit the rebuild to')
        parser.add_argument('--student', type=int, help='Student ID to limit the rebuild to')
        parser.add_argument(
            '--async',
            action='store_true',
            dest='run_async',
            help='Queue the rebuild as a Celery task instead of running it here',
        )

    def handle(self, *args, **options):
        subject_id = options.get('subject')
        season_id = options.get('season')
        student_id = options.get('student')

        if season_id is not None and not Season.objects.filter(pk=season_id).exists():
            raise CommandError(f'Season {season_id} does not exist')

        if options['run_async']:
            result = reconcile_grade_summaries.delay(
                subject_id=subject_id, season_id=season_id, student_id=student_id
            )
            self.stdout.write(f'Queued reconciliation task {result.id}')
            return

        stats = reconcile_summaries(subject=subject_id, season=season_id, student=student_id)
        self.stdout.write(
            f"Checked {stats['checked']} summaries, repaired {stats['repaired']}, failed {stats['failed']}"
        )
        if stats['failed']:
            self.stdout.write(self.style.WARNING('Some summaries could not be rebuilt; see the log for details'))
        else:
            self.stdout.write(self.style.SUCCESS('Grade summaries are consistent with the ledger'))
