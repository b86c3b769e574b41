"""
Prefix-invalidated read cache over Flask-Caching.

Flask-Caching backends cannot delete by pattern portably, so every prefix
carries a generation number stored in the cache itself. Keys are written
under the current generation; invalidating a prefix bumps the generation
and orphans the old keys until they time out.

Only listings go through here. Capacity and payment status are always read
from the database.
"""
import logging

from eventful.extensions import cache

logger = logging.getLogger(__name__)

_GENERATION_KEY = 'gen:{prefix}'


def _generation(prefix):
    generation = cache.get(_GENERATION_KEY.format(prefix=prefix))
    if generation is None:
        generation = 1
        cache.set(_GENERATION_KEY.format(prefix=prefix), generation, timeout=0)
    return generation


def _versioned_key(prefix, key):
    return f'{prefix}:v{_generation(prefix)}:{key}'


def get(prefix, key):
    """Return the cached value or None. Backend failures count as a miss."""
    try:
        return cache.get(_versioned_key(prefix, key))
    except Exception as e:
        logger.warning(f"Cache get failed for {prefix}:{key}: {e}")
        return None


def set(prefix, key, value, timeout=None):
    try:
        cache.set(_versioned_key(prefix, key), value, timeout=timeout)
    except Exception as e:
        logger.warning(f"Cache set failed for {prefix}:{key}: {e}")


def invalidate_prefix(*prefixes):
    """Drop every key stored under the given prefixes."""
    for prefix in prefixes:
        try:
            cache.set(_GENERATION_KEY.format(prefix=prefix), _generation(prefix) + 1, timeout=0)
        except Exception as e:
            logger.warning(f"Cache invalidation failed for {prefix}: {e}")


def user_tickets_prefix(user_id):
    return f'tickets:user:{user_id}'


def creator_payments_prefix(creator_id):
    return f'payments:creator:{creator_id}'
