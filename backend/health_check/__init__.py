"""Liveness checks for the updater's own service."""
