"""Pydantic response schemas used by the API."""

from pydantic import BaseModel, Field


class UploadResponse(BaseModel):
    """Where an uploaded file ended up and the URL it is served from."""
    filename: str = Field(..., description="Stored file name (the client's original name)")
    url: str = Field(..., description="Path under /assets serving the file")


class StatusResponse(BaseModel):
    status: str
    database: str  # ServerState value of the owning instance
    version: str
