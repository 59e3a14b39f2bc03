"""
Signal handlers
===============

Business configuration reloads whenever an administrator saves or deletes a
SystemConfig row.
"""

from django.db import transaction
from django.db.models.signals import post_save, post_delete
import logging

logger = logging.getLogger(__name__)


def connect(app_config):
    SystemConfig = app_config.get_model('SystemConfig')

    def reload_business_config(sender, instance, **kwargs):
        logger.info(f"Configuration {instance.key} changed; reloading business rules")
        transaction.on_commit(app_config.business_config.reload)

    post_save.connect(reload_business_config, sender=SystemConfig, weak=False,
                      dispatch_uid='cooperative.reload_config_on_save')
    post_delete.connect(reload_business_config, sender=SystemConfig, weak=False,
                        dispatch_uid='cooperative.reload_config_on_delete')
