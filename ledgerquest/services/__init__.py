"""Process-level wiring of the economy services."""

from .container import ServiceContainer, create_application, shutdown_application

__all__ = ["ServiceContainer", "create_application", "shutdown_application"]
