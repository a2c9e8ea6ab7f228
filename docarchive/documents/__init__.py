"""
docarchive Documents — Archive records and the pure functions over them.

    models   — Category, Document, Tag; store payload normalisation
    tree     — category forest builder and hierarchy diagnostics
    flatten  — expansion state and the tree render list
    query    — search, file-type, category scope and sort
"""
