"""Asset upload endpoint.

Exposes:
- POST /assets: store a multipart `picture` file under the assets directory
"""

from urllib.parse import quote

from fastapi import APIRouter, File, HTTPException, Request, UploadFile

from ..core.config import ASSETS_ROUTE
from ..core.logging import get_logger
from ..core.models_io import UploadResponse

router = APIRouter()
logger = get_logger(__name__)


@router.post(ASSETS_ROUTE, response_model=UploadResponse, status_code=201)
async def upload_asset(request: Request, picture: UploadFile = File(...)):
    if not picture.filename:
        raise HTTPException(status_code=400, detail="picture must have a file name")
    storage = request.app.state.storage
    try:
        target = await storage.save(request, picture, field_name="picture")
    except OSError as e:
        logger.error("upload_failed", filename=picture.filename, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to store upload") from e
    return UploadResponse(filename=target.filename, url=f"{ASSETS_ROUTE}/{quote(target.filename)}")
