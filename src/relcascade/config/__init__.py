"""Settings, config discovery and logging setup."""

from relcascade.config.logging import configure_logging
from relcascade.config.models import CascadeConfig, DatabaseConfig
from relcascade.config.settings import RelcascadeSettings

__all__ = ["CascadeConfig", "DatabaseConfig", "RelcascadeSettings", "configure_logging"]
