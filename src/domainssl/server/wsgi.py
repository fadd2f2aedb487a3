"""WSGI entry point for external servers.

Reads the config path from ``DOMAINSSL_CONFIG``::

    DOMAINSSL_CONFIG=/etc/domainssl/config.yaml gunicorn domainssl.server.wsgi:app
"""

from __future__ import annotations

import os

from domainssl.app import create_app
from domainssl.config import DomainSslConfig
from domainssl.db import init_database
from domainssl.logging import configure_logging

_config = DomainSslConfig(config_file=os.environ.get("DOMAINSSL_CONFIG", "config.yaml"))
configure_logging(_config.settings.logging)

app = create_app(_config, database=init_database(_config.settings.database))
