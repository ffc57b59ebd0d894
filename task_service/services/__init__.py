"""Task operations."""
