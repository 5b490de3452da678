from pydantic_settings import BaseSettings, SettingsConfigDict

from quote_aggregation_engine.config.apm import APMConfig
from quote_aggregation_engine.config.cache import CacheConfig
from quote_aggregation_engine.config.logger import LoggerConfig


class EngineConfig(BaseSettings):
    # Providers queried when a request does not name any.
    DEFAULT_PROVIDERS: list[str] = ['lifi', 'kyberswap', 'zerox', 'odos']
    # Providers able to embed custom contract calls into a route.
    CONTRACT_CALL_PROVIDERS: list[str] = ['lifi']
    MAX_SLIPPAGE_BPS: int = 500  # 5%
    SLIPPAGE_BPS_CEILING: int = 10_000
    DEFAULT_EXPIRY_MS: int = 5_000
    DISPLAY_PRECISION: int = 6
    NATIVE_TOKEN_ADDRESS: str = '0xeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeee'
    ZERO_ADDRESS: str = '0x0000000000000000000000000000000000000000'
    INTEGRATOR: str = 'quote-aggregation-engine'


class Config(APMConfig, LoggerConfig, CacheConfig, EngineConfig, BaseSettings):
    SERVER_HOST: str = 'localhost'
    SERVER_PORT: int = 8000
    RELOAD: bool = True
    VERSION: str = '0.1.0'
    CORS_ORIGINS: list[str] = ['*']
    CORS_CREDENTIALS: bool = True
    CORS_METHODS: list[str] = ['*']
    CORS_HEADERS: list[str] = ['*']
    WORKERS_COUNT: int = 1

    model_config = SettingsConfigDict(env_file='.env', extra='ignore')


config = Config()

from quote_aggregation_engine.config.providers import ProvidersConfig  # noqa: E402

providers = ProvidersConfig()
