from typing import Optional, Tuple

from elasticapm.base import Client
from elasticapm.contrib.starlette import make_apm_client

from quote_aggregation_engine.config import Config


class ApmClient:
    """
    Elastic APM client of the engine, one per application.

    Provider failures are reported with the provider name and, where known,
    the call phase as custom context, so they can be grouped per provider in APM.
    """

    def __init__(self, config: Config):
        self.enabled = config.APM_ENABLED
        self.client: Client = make_apm_client({
            'SERVICE_NAME': config.SERVICE_NAME,
            'SERVICE_VERSION': config.VERSION,
            'SERVER_URL': config.APM_SERVER_URL,
            'ENVIRONMENT': config.ENVIRONMENT,
            'ENABLED': config.APM_ENABLED,
            'RECORDING': config.APM_RECORDING,
            'TRANSACTION_SAMPLE_RATE': config.APM_TRANSACTION_SAMPLE_RATE,
            'CAPTURE_HEADERS': config.APM_CAPTURE_HEADERS,
            'LOG_LEVEL': config.LOG_LEVEL,
        })

    def capture_exception(self, exc_info: Optional[Tuple] = None, **custom) -> Optional[str]:
        if not self.enabled:
            return None
        return self.client.capture_exception(exc_info, custom=custom or None)
