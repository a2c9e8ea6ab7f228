"""docarchive Admin — Archive manager graph for administrators."""
