"""Data models for modification units and lifecycle runs."""
