"""Scheduled update cycle."""

from scheduler.update_loop import UpdateLoop

__all__ = ['UpdateLoop']
