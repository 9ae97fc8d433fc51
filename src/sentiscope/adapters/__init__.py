"""Adapters binding the core ports to SQLite, OpenAI, Discord and Telegram."""
