"""Logging subsystem for domainssl.

Public API::

    from domainssl.logging import configure_logging

    configure_logging(settings.logging)
"""

from domainssl.logging.setup import configure_logging

__all__ = ["configure_logging"]
