"""docarchive UI — Reflex pages for the explorer and the archive manager."""
