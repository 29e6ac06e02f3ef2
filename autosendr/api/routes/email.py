"""
API endpoint for AI email enhancement.
"""
from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends

from autosendr.api.dependencies import get_email_enhancer
from autosendr.domain.components.email_enhancer import EmailEnhancer
from autosendr.domain.models.enhancement import EnhancementRequest

router = APIRouter()


@router.post("/email/enhance")
async def enhance_email(
    payload: Annotated[EnhancementRequest, Body(...)],
    enhancer: Annotated[EmailEnhancer, Depends(get_email_enhancer)],
) -> dict[str, Any]:
    """
    Enhance an email with AI. Always returns usable text; failures are
    reported in the error field with aiEnhanced=false.
    """
    result = await enhancer.enhance(payload)
    return result.model_dump(by_alias=True, exclude_none=True)
