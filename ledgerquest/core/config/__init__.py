"""
Configuration subsystem for LedgerQuest.

- **config.py**: static settings from environment variables (.env support)
- **manager.py**: YAML game tunables with versioned snapshots
"""

from ledgerquest.core.config.config import Config, Environment
from ledgerquest.core.config.manager import ConfigManager, ConfigSnapshot

__all__ = ["Config", "Environment", "ConfigManager", "ConfigSnapshot"]
