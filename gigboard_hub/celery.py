import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'gigboard_hub.settings')

app = Celery('gigboard_hub')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
