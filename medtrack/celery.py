import os
from celery import Celery
from django.conf import settings

# Set the default Django settings module for the 'celery' program
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'medtrack.settings')

app = Celery('medtrack')

# Using a string means the worker doesn't have to serialize the configuration
# object to child processes
app.config_from_object('django.conf:settings', namespace='CELERY')

# Load task modules from all registered Django app configs
app.autodiscover_tasks(lambda: settings.INSTALLED_APPS)

# Configure Celery beat schedule for periodic tasks
app.conf.beat_schedule = {
    'sweep-missed-doses': {
        'task': 'medication.tasks.sweep_missed_doses',
        'schedule': 300.0,  # Every 5 minutes
    },
}

# Configure task time limits
app.conf.task_time_limit = 600
app.conf.task_soft_time_limit = 540

# Configure result backend and expire time
app.conf.result_expires = 3600  # Results expire after 1 hour
