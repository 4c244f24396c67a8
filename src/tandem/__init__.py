"""Tandem - file-triggered development and review workflow orchestrator."""

__version__ = "0.1.0"
