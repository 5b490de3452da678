import json
import os
from pathlib import Path

import pytest
from jsonschema import validate

from quote_aggregation_engine.config.providers import PROVIDERS_ROOT

SCHEMA_PATH = Path(__file__).parent / 'provider_config.schema.json'


@pytest.fixture()
def get_schema():
    with open(SCHEMA_PATH) as f:
        return json.load(f)


def test_validate_config_schema(get_schema):
    configs = 0
    for path, subdirs, files in os.walk(PROVIDERS_ROOT):
        for file in files:
            if 'config.json' == file:
                with open(Path(path, file)) as f:
                    provider_config = json.load(f)
                    validate(provider_config, get_schema)
                configs += 1
    assert configs >= 6
