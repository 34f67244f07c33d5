"""CLI commands for sds-deps."""
