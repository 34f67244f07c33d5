"""Shared utilities for sds-deps."""
