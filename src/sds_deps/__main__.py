"""Allow running as `python -m sds_deps`."""

from sds_deps.cli import main

main()
