"""docarchive Explorer — Public and member browsing sessions."""
