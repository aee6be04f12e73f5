"""Taskhub: project-management services on an in-process service bus."""

__version__ = "0.1.0"
