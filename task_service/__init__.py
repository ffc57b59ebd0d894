"""Task Service - task management with per-user ownership and status notifications."""

__version__ = "1.0.0"
