"""Cached item sources, one module per list kind.

Each module in this package owns:
- the API calls for one item list (via GitHubAPIClient / shared transport)
- the list query (window / repo set) used for cache validity
- any source-specific refresh logic on top of CachedListSource.get()
"""
