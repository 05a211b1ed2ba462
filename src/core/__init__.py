"""Core domain package for stellarium.

Core contains the registry, checkpoint, translation, streaming and delivery
logic without any Telegram, Horizon or storage-specific code, keeping the
business logic portable.
"""
