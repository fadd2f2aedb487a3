"""Flask application package for domainssl.

Public API::

    from domainssl.app import create_app
"""

from domainssl.app.factory import create_app

__all__ = ["create_app"]
