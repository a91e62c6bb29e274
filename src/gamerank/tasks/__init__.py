"""Helpers for scheduled batch jobs."""
