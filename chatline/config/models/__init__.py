"""Configuration model exports.

    from chatline.config.models import DirectLineConfig, SessionConfig
"""

from chatline.config.models.directline import DirectLineConfig
from chatline.config.models.observability import (
    LoggingConfig,
    ObservabilityConfig,
)
from chatline.config.models.session import SessionConfig, SessionMode

__all__ = [
    "DirectLineConfig",
    "LoggingConfig",
    "ObservabilityConfig",
    "SessionConfig",
    "SessionMode",
]
