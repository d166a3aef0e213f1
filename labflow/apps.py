from django.apps import AppConfig


class LabflowConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'labflow'
