from typing import Optional

from pydantic_settings import BaseSettings


class LoggerConfig(BaseSettings):
    LOGGING_LEVEL: str = 'INFO'
    LOG_HANDLERS: list[str] = ['console']  # 'console', 'logstash'
    LOGSTASH_LOGGING_LEVEL: str = 'DEBUG'
    LOGSTASH_HOST: str = 'logstash-logstash.logging.svc.cluster.local'
    LOGSTASH_PORT: int = 5959
    LOGSTASH_DATABASE_PATH: Optional[str] = None  # sqlite buffer of unsent events, memory when unset
    LOGSTASH_EVENT_TTL: int = 30  # sec
