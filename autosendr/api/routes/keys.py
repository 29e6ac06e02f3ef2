"""
API endpoint for key fleet statistics.
"""
from typing import Annotated, Any

from fastapi import APIRouter, Depends

from autosendr.api.dependencies import get_key_manager
from autosendr.domain.components.key_manager import KeyManager

router = APIRouter()


@router.get("/keys/stats")
async def get_key_stats(
    key_manager: Annotated[KeyManager, Depends(get_key_manager)],
) -> dict[str, Any]:
    """
    Aggregate capacity and usage across all keys. Never includes key values.
    """
    stats = await key_manager.get_key_stats()
    return {**stats.model_dump(), "remaining_today": stats.remaining_today}
