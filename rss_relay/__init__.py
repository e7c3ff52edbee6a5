"""Poll syndication feeds and relay new items to chat webhooks."""

__version__ = "1.0.0"
