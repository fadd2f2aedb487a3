"""domainssl: TLS certificate lifecycle manager for custom domains."""

__version__ = "0.1.0"
