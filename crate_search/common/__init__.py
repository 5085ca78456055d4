"""Common utilities shared across the engine.

Includes:
- ``config``: Pydantic-based configuration from environment variables.
- ``logging``: structured logging setup with structlog.
- ``metrics``: Prometheus metrics helpers.

Import pattern:
- from crate_search.common.config import CrateSearchConfig
- from crate_search.common.logging import configure_logging
"""
