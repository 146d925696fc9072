from typing import Any

from django.conf import settings
from django.core.cache import caches

from configuration.models import Configuration

CONFIGURATION_KEY_PREFIX = "config"


def _cache_key(key: str) -> str:
    return f"{CONFIGURATION_KEY_PREFIX}_{key}"


def configuration_value(key: str) -> Any:
    """
    Return the typed value of the configuration record ``key``.

    The value is read from the ``configuration_cache`` alias and only loaded
    from the database (and cached) on a miss.

    Raises:
        Configuration.DoesNotExist: If no record exists for ``key``.
    """
    value = caches["configuration_cache"].get(_cache_key(key))

    if value is None:
        value = cache_configuration_value(key)

    return value


def cache_configuration_value(key: str, value: Any | None = None) -> Any:
    """
    Store the value for ``key`` in the configuration cache and return it.

    When ``value`` is None the record is loaded from the database and cast
    with ``Configuration.get_value()``. Entries expire after
    ``settings.CONFIGURATION_CACHE_TIMEOUT`` seconds.

    Raises:
        Configuration.DoesNotExist: If ``value`` is None and there is no
            record with the given key.
    """
    if value is None:
        value = Configuration.objects.get(key=key).get_value()

    caches["configuration_cache"].set(
        _cache_key(key), value, timeout=settings.CONFIGURATION_CACHE_TIMEOUT
    )
    return value


def invalidate_configuration_value(key: str) -> None:
    caches["configuration_cache"].delete(_cache_key(key))
