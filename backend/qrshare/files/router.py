"""FastAPI router for the file listing endpoint."""
import logging
from typing import List

from fastapi import APIRouter

from qrshare.sessions.coordinator import get_coordinator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["files"])


@router.get("/files", response_model=List[str])
async def list_files() -> List[str]:
    """List every stored file name, across all sessions.

    Returns:
        JSON array of file names in alphabetical order.
    """
    return get_coordinator().list_files()
