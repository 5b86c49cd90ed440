"""Settings, logging, errors, metrics and rate limiting."""
