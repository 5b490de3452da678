from pydantic_settings import BaseSettings


class APMConfig(BaseSettings):
    SERVICE_NAME: str = 'quote-aggregation-engine'
    ENVIRONMENT: str = 'dev'
    APM_ENABLED: bool = False
    APM_SERVER_URL: str = 'http://localhost:8200'
    APM_RECORDING: bool = False
    APM_TRANSACTION_SAMPLE_RATE: float = 1.0  # share of transactions sent, 0..1
    APM_CAPTURE_HEADERS: bool = False
    LOG_LEVEL: str = 'off'  # APM agent's own log level
