"""Generated-image gallery with cursor pagination for infinite scroll."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from creative_studio.api.deps import get_services
from creative_studio.auth.supabase_auth import current_user_id
from creative_studio.jobs.errors import StorageError
from creative_studio.services import Services

logger = logging.getLogger(__name__)

router = APIRouter()

PAGE_SIZE = 8


@router.get("/gallery")
def list_gallery(
    limit: int = Query(PAGE_SIZE, ge=1, le=100),
    before: Optional[datetime] = None,
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
):
    rows = services.gallery.list_for_user(user_id, limit=limit, before=before)
    items = []
    for row in rows:
        try:
            url = services.storage.signed_url(row.path, services.signed_url_ttl_seconds)
        except StorageError as exc:
            # Skip images we cannot sign rather than failing the page.
            logger.warning("Could not sign %s: %s", row.path, exc)
            continue
        items.append({
            "id": row.id,
            "image_url": url,
            "prompt": row.prompt,
            "size": row.size,
            "exec_id": row.exec_id,
            "created_at": row.created_at.isoformat(),
        })
    return {
        "items": items,
        "next_cursor": rows[-1].created_at.isoformat() if rows else None,
        "has_more": len(rows) == limit,
    }
