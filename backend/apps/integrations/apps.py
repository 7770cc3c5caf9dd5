"""
Integrations app configuration.
Links a store to its commerce platform so cancellations flow back.
"""
from django.apps import AppConfig


class IntegrationsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.integrations'
    verbose_name = 'Integrations'
