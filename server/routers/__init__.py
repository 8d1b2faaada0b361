"""Route groups for the server.

- health: liveness check and status page
- uploads: multipart asset uploads stored through `DiskStorage`
"""
