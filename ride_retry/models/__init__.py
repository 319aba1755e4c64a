"""Data models for queue items and trigger configuration."""
