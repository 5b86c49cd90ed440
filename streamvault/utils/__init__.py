"""AWS adapters (S3 object store, MediaConvert)."""
