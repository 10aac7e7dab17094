"""
Core infrastructure layer for LedgerQuest.

- Configuration (Config, ConfigManager)
- Database subsystem (DatabaseService, retry policy, circuit breaker)
- Logging (structured logging, LogContext)
- Event bus
- Server clock
- Input validation and infrastructure exceptions

This package is intentionally thin; import from the submodules.
"""
