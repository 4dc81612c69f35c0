"""Meet Assist: meeting lifecycle webhooks, post-meeting chat and voice agent."""

__version__ = "0.1.0"
