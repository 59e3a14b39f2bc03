from django.apps import AppConfig
from django.conf import settings


class CooperativeConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'cooperative'
    verbose_name = 'Cooperative Society'

    def ready(self):
        from cooperative.services.config import BusinessConfig, DEFAULT_TTL
        from cooperative import signals

        self.business_config = BusinessConfig(
            ttl=getattr(settings, 'BUSINESS_CONFIG_TTL', DEFAULT_TTL)
        )
        signals.connect(self)
