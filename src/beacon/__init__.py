"""Beacon - keeps pro subscribers' content and Telegram digests fresh."""
