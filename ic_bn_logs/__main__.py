"""Allow ``python -m ic_bn_logs``."""

from ic_bn_logs.cli import main

main()
