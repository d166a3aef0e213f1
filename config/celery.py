import os
from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('labflow')

# every CELERY_* value in Django settings
app.config_from_object('django.conf:settings', namespace='CELERY')

# picks up labflow/tasks.py
app.autodiscover_tasks()
