from django.apps import AppConfig

class FeedsConfig(AppConfig):
    """Django app config for feeds; loads signal handlers on ready."""
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'feeds'

    def ready(self):
        """Import signal modules to register handlers."""
        import feeds.signals  # noqa: F401
