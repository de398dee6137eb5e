"""
Configuration module for the call agent.

Key components:
- constants: protocol event names, tool names, route paths and defaults shared
  by the bridge, the adapters and the HTTP layer.
- logging_config: console and rotating-file logging for the application logger.
- settings: environment-backed ``Settings`` with startup validation.

Usage examples:
```python
from call_agent.config.logging_config import configure_logging
from call_agent.config.settings import load_settings

logger = configure_logging()
settings = load_settings().validate_required()
logger.info(f"Media stream URL: {settings.media_stream_url}")
```
"""
