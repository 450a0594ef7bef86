"""Watchdog for the updater's own container."""

from service_watchdog.watchdog import Watchdog, WatchdogOutcome

__all__ = ['Watchdog', 'WatchdogOutcome']
