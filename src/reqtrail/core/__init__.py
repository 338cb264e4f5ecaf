"""Core configuration for reqtrail."""
