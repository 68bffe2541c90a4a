"""
Utility Package for Uptime Monitor

Logging setup, time and batching helpers, and target validators.
"""
