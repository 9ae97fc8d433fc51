"""Core domain package for sentiscope.

Core contains the ingestion guards, lifecycle, reconciliation, and backfill
logic without any Discord, Telegram, or storage-specific code, keeping the
business logic portable.
"""
