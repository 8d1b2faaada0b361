"""Social Media Server: HTTP bootstrap, asset uploads and database startup gate."""

__version__ = "1.0.0"
