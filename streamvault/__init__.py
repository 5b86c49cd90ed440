"""StreamVault: episode ingestion, HLS signing and device-bound playback tokens."""

__version__ = "1.0.0"
