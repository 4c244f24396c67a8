"""Coordination directory handling.

The coordination directory is the only channel between the orchestrator and
the outside world: operators and stage programs write trigger markers, and
the watcher turns those writes into workflow events.
"""
