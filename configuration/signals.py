from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from configuration.models import Configuration
from configuration.utils import (
    cache_configuration_value,
    invalidate_configuration_value,
)


@receiver(post_save, sender=Configuration)
def update_cached_configuration_value(
    sender: type[Configuration], *, instance: Configuration, **kwargs
) -> None:
    """
    Refresh the cached value after a Configuration record is saved.

    A value that fails to parse is not cached; the stale entry is dropped
    instead so the next read hits the database and raises there.
    """
    try:
        value = instance.get_value()
    except ValueError:
        invalidate_configuration_value(instance.key)
        return
    cache_configuration_value(instance.key, value)


@receiver(post_delete, sender=Configuration)
def remove_cached_configuration_value(
    sender: type[Configuration], *, instance: Configuration, **kwargs
) -> None:
    invalidate_configuration_value(instance.key)
