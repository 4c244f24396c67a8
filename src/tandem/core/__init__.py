"""Core orchestration and workflow management.

This module contains the workflow state machine, the supervisor for the
external stage process, and the orchestrator and daemon that tie them to
the coordination directory watcher.
"""
