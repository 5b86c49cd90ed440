"""Versioned API (v1).

The aggregated router lives at `streamvault.api.v1.routers.router`.
"""
