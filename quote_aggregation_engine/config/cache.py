from typing import Literal, Optional

from pydantic_settings import BaseSettings


class CacheConfig(BaseSettings):
    CACHE: Literal['memory', 'redis'] = 'memory'
    CACHE_HOST: str = '127.0.0.1'
    CACHE_PORT: int = 6379
    CACHE_DB: int = 0
    CACHE_PASSWORD: Optional[str] = None
    CACHE_TIMEOUT: float = 30
    QUOTE_CACHE_TTL: int = 5  # sec, 0 keeps quotes until evicted
