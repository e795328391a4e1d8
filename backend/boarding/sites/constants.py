"""
Constants for site selection.
"""

# Header carrying the active site (handle or numeric id) from the frontend.
SITE_HEADER = "X-Site"

# Query parameter accepted when the header is absent, e.g. ?site=de.
SITE_QUERY_PARAM = "site"
