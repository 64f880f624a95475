"""External service integrations: data platform, AI, calendar, identity."""
