"""External API clients.

Submodules:
    openlibrary -- Open Library search and work lookup (canonical metadata)
"""
