"""Relay a Mastodon account's new posts to Bluesky."""

__version__ = "0.1.0"
