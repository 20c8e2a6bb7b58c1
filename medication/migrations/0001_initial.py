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
            name='MedicationPlan',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('prescription_number', models.CharField(editable=False, max_length=20, unique=True)),
                ('start_date', models.DateField()),
                ('end_date', models.DateField(blank=True, null=True)),
                ('source', models.CharField(choices=[('prescribed', 'Prescribed'), ('imported', 'Imported')], default='prescribed', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('patient', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='medication_plans', to=settings.AUTH_USER_MODEL)),
                ('prescribed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='prescribed_plans', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Medication Plan',
                'verbose_name_plural': 'Medication Plans',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='Medication',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('dose', models.CharField(blank=True, max_length=100)),
                ('route', models.CharField(choices=[('oral', 'Oral'), ('subcutaneous', 'Subcutaneous'), ('intramuscular', 'Intramuscular'), ('intravenous', 'Intravenous'), ('rectal', 'Rectal'), ('sublingual', 'Sublingual'), ('topical', 'Topical'), ('inhaled', 'Inhaled')], default='oral', max_length=20)),
                ('frequency', models.CharField(blank=True, max_length=50)),
                ('times', models.JSONField(default=list)),
                ('critical', models.BooleanField(default=False)),
                ('start_date', models.DateField()),
                ('end_date', models.DateField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('plan', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='medications', to='medication.medicationplan')),
            ],
            options={
                'verbose_name': 'Medication',
                'verbose_name_plural': 'Medications',
                'ordering': ['plan', 'id'],
            },
        ),
        migrations.CreateModel(
            name='ScheduledDose',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('scheduled_at', models.DateTimeField()),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('taken', 'Complete'), ('skipped', 'Skipped'), ('missed', 'Missed')], default='pending', max_length=20)),
                ('note', models.TextField(blank=True, null=True)),
                ('acted_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('medication', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='doses', to='medication.medication')),
                ('patient', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='scheduled_doses', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Scheduled Dose',
                'verbose_name_plural': 'Scheduled Doses',
                'ordering': ['scheduled_at'],
            },
        ),
        migrations.CreateModel(
            name='NudgeLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('message', models.TextField()),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('doctor', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='sent_nudges', to=settings.AUTH_USER_MODEL)),
                ('patient', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='received_nudges', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Nudge Log',
                'verbose_name_plural': 'Nudge Logs',
                'ordering': ['-created_at'],
            },
        ),
        migrations.AddIndex(
            model_name='scheduleddose',
            index=models.Index(fields=['status', 'scheduled_at'], name='dose_status_sched_idx'),
        ),
        migrations.AddIndex(
            model_name='scheduleddose',
            index=models.Index(fields=['patient', 'scheduled_at'], name='dose_patient_sched_idx'),
        ),
        migrations.AddConstraint(
            model_name='scheduleddose',
            constraint=models.UniqueConstraint(fields=('medication', 'scheduled_at'), name='unique_dose_per_medication_slot'),
        ),
    ]
