"""Taskloop: an autonomous agent that plans, calls tools and runs code in a sandbox."""

__version__ = "0.1.0"
