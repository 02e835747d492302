"""
Configuration module for the PlushPal realtime voice client.

This module provides centralized configuration management for the entire application,
including constants, logging setup, and environment-based settings.

Key components:
- constants: Defines application-wide constants such as Realtime API endpoints,
  the control channel label, audio format parameters and message types.
- logging_config: Provides a consistent logging infrastructure with support for
  console and file-based logging with rotation capabilities.
- settings: Reads the API key and optional overrides from the environment.

Usage examples:
```python
from plushpal.config.constants import LOGGER_NAME, DEFAULT_REALTIME_MODEL
from plushpal.config.logging_config import configure_logging
from plushpal.config.settings import Settings

logger = configure_logging()
settings = Settings.from_env()
logger.info(f"Using model {settings.model}")
```
"""

from plushpal.config.settings import Settings

__all__ = ["Settings"]
