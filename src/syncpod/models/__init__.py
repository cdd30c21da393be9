"""Data models for syncpod."""
