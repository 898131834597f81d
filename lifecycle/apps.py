# lifecycle/apps.py

from django.apps import AppConfig


class LifecycleConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "lifecycle"
    verbose_name = "Entity lifecycle"

    def ready(self):
        from . import signals  # noqa
        from .checks import transition_tables  # noqa
