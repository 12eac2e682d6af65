import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Season',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(blank=True, help_text='Plain display name, e.g., Season 1', max_length=100)),
                ('name_en', models.CharField(blank=True, max_length=100, verbose_name='Name (English)')),
                ('name_ar', models.CharField(blank=True, max_length=100, verbose_name='Name (Arabic)')),
                ('name_ku', models.CharField(blank=True, max_length=100, verbose_name='Name (Kurdish)')),
                ('description', models.TextField(blank=True)),
                ('order', models.PositiveSmallIntegerField(help_text='Ordinal position in the school year (1-4)', unique=True)),
                ('is_active', models.BooleanField(default=True)),
                ('grades_locked', models.BooleanField(default=False, help_text='When locked, grades for this season cannot be modified')),
                ('grades_locked_at', models.DateTimeField(blank=True, help_text='When grades were locked', null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('grades_locked_by', models.ForeignKey(blank=True, help_text='User who locked the grades', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='locked_seasons', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Season',
                'verbose_name_plural': 'Seasons',
                'ordering': ['order'],
            },
        ),
    ]
