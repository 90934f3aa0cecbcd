"""
Catalogue read endpoint - price and availability of a single artwork.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from domain.errors import NotFoundError
from domain.responses import success_response
from models import ArtworkView
from services import catalog_service

router = APIRouter(prefix="/artworks", tags=["artworks"])


@router.get("/{artwork_id}")
async def get_artwork(artwork_id: str, db: AsyncSession = Depends(get_db)):
    artwork = await catalog_service.get_artwork(db, artwork_id)
    if artwork is None:
        raise NotFoundError("Artwork", artwork_id)
    return success_response(data=ArtworkView.from_artwork(artwork).to_wire())
