"""Allow ``python -m domainssl``."""

from domainssl.cli.main import main

main()
