"""
WSGI config for the MedTrack project.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'medtrack.settings')

application = get_wsgi_application()
