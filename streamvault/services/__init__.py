"""Domain services: tokens, devices, transcoding, manifests, ingestion, playback."""
