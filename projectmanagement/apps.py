from django.apps import AppConfig


class ProjectmanagementConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'projectmanagement'
