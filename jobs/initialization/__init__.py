"""
Sweeper Initialization Module.

Startup logic split into focused modules:
- logging: Logger configuration
- services: Deposit monitor construction and environment checks
- shutdown: Graceful shutdown handler
"""

__all__ = []
