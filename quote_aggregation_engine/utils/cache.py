from enum import Enum
from hashlib import md5

from aiocache import Cache
from aiocache.serializers import PickleSerializer
from pydantic import BaseModel

from quote_aggregation_engine.config import CacheConfig


def _key_part(value) -> str:
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    if isinstance(value, Enum):
        return str(value.value)
    return repr(value)


def key_from_args(func, *args, **kwargs) -> str:
    """
    Cache key of a provider call.

    Quotes of different providers for the same swap request must not collide,
    so the provider name of a bound method leads the key.
    """
    owner = getattr(func, '__self__', None)
    parts = [
        getattr(owner, 'PROVIDER_NAME', ''),
        func.__module__ or '',
        func.__name__,
    ]
    parts.extend(_key_part(arg) for arg in args)
    parts.extend(f'{name}={_key_part(value)}' for name, value in sorted(kwargs.items()))
    return md5('|'.join(parts).encode()).hexdigest()


def get_cache_config(config: CacheConfig, namespace: str = 'quotes') -> dict:
    """Keyword arguments of aiocache.cached for the configured backend."""
    if config.CACHE == 'memory':
        return {
            'cache': Cache.MEMORY,
            'key_builder': key_from_args,
            'namespace': namespace,
        }
    if config.CACHE == 'redis':
        return {
            'cache': Cache.REDIS,
            'endpoint': config.CACHE_HOST,
            'port': config.CACHE_PORT,
            'db': config.CACHE_DB,
            'password': config.CACHE_PASSWORD,
            'timeout': config.CACHE_TIMEOUT,
            'serializer': PickleSerializer(),
            'key_builder': key_from_args,
            'namespace': namespace,
        }
    raise ValueError(f'Unknown cache backend {config.CACHE!r}, expected memory or redis')
