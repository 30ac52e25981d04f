"""Message bus connection and subscription management."""
