"""
docarchive — Hierarchical document archive explorer.

A category forest over a flat document store, filtered by caller visibility,
searched and sorted on the client, and managed by administrators through
the archive manager.

Packages:
    engine     — config, errors, caller context, structured event logs
    documents  — records, tree builder, flattener, query engine
    security   — visibility resolution
    store      — async HTTP client for the backing store
    explorer   — public/member explorer session
    admin      — archive manager graph
    ui         — Reflex pages
"""

__version__ = "1.0.0"
__all__ = ["engine", "documents", "security", "store", "explorer", "admin", "ui"]
