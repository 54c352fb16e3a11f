"""Task scheduling and resource allocation for small teams."""
