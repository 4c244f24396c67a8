"""External service integrations.

Thin wrappers around services Tandem reports to, kept separate so they can
be mocked in tests and never interfere with the workflow itself.
"""
