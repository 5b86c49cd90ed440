"""ASGI middlewares (request id, rate limiting)."""
