"""
lockrelease Core Module

Ambient infrastructure shared by the ledger components:
- Exception hierarchy
- Configuration management
- Structured logging
- Prometheus metrics
"""

__all__ = []
