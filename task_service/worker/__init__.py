"""Notification worker consuming task status jobs."""
