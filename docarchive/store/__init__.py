"""docarchive Store — Async HTTP client for the archive backing store."""
