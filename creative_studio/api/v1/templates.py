"""Template-based generation (synchronous: waits for the images)."""

import asyncio
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from creative_studio.api.deps import get_services
from creative_studio.auth.supabase_auth import current_user_id
from creative_studio.services import Services

router = APIRouter()


class TemplateGenerateRequest(BaseModel):
    user_input: Dict[str, Any] = Field(default_factory=dict, alias="userInput")
    n: int = 1
    size: Optional[str] = None

    model_config = {"populate_by_name": True}


@router.post("/templates/{template_id}/generate", dependencies=[Depends(current_user_id)])
async def generate_from_template(
    template_id: str,
    request: TemplateGenerateRequest,
    services: Services = Depends(get_services),
):
    if services.template_generator is None:
        raise HTTPException(status_code=503, detail="Image processor not configured")

    loop = asyncio.get_running_loop()
    images = await loop.run_in_executor(
        None,
        lambda: services.template_generator.generate(
            template_id, request.user_input, n=request.n, size=request.size
        ),
    )
    return {"success": True, "images": images}
