"""
Configuration module for the cruise-control call agent.

Key components:
- constants: audio formats, sample rates, wire protocol values and Gemini Live defaults.
- logging_config: console and rotating-file logging for the ``cruise_control`` logger.

Usage examples:
```python
from cruise_control.config.constants import CAPTURE_SAMPLE_RATE, LOGGER_NAME
from cruise_control.config.logging_config import configure_logging

logger = configure_logging()
logger.info("Application started")
```
"""
