"""Shared fixtures for the crate search tests."""

import pytest

from crate_search.common.config import get_config
from crate_search.common.metrics import MetricsCollector

from .fakes import FakeRemote, make_llm_client


@pytest.fixture
def config():
    """Online configuration that never reads a dotenv file."""
    return get_config(env_file=None, openai_api_key="test-key", cs_stop_words_path=None)


@pytest.fixture
def offline_config():
    """Configuration without remote credentials."""
    return get_config(env_file=None, openai_api_key="", cs_stop_words_path=None)


@pytest.fixture
def metrics():
    return MetricsCollector("test-crate-search")


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def llm_client(config, remote):
    return make_llm_client(config, remote)
