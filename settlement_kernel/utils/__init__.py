"""Kernel utilities: cache service and chunked batch execution."""
