"""Generated-image records backing the history and gallery views."""

import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from creative_studio.jobs.models import GeneratedImage


class GalleryStore(ABC):
    @abstractmethod
    def add(self, image: GeneratedImage) -> None:
        ...

    @abstractmethod
    def list_for_user(
        self, user_id: str, limit: int = 8, before: Optional[datetime] = None
    ) -> List[GeneratedImage]:
        """Newest first; ``before`` is the created_at cursor of the previous page."""
        ...


class InMemoryGalleryStore(GalleryStore):
    def __init__(self) -> None:
        self._images: List[GeneratedImage] = []
        self._lock = threading.Lock()

    def add(self, image):
        with self._lock:
            self._images.append(image)

    def list_for_user(self, user_id, limit=8, before=None):
        with self._lock:
            rows = [
                img for img in self._images
                if img.user_id == user_id and (before is None or img.created_at < before)
            ]
        rows.sort(key=lambda img: img.created_at, reverse=True)
        return rows[:limit]


class SupabaseGalleryStore(GalleryStore):
    """Rows in the ``generated_images`` table."""

    def __init__(self, client) -> None:
        self._client = client

    def add(self, image):
        self._client.table("generated_images").insert({
            "id": image.id,
            "user_id": image.user_id,
            "path": image.path,
            "prompt": image.prompt,
            "size": image.size,
            "exec_id": image.exec_id,
            "created_at": image.created_at.isoformat(),
        }).execute()

    def list_for_user(self, user_id, limit=8, before=None):
        query = (
            self._client.table("generated_images")
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .limit(limit)
        )
        if before is not None:
            query = query.lt("created_at", before.isoformat())
        result = query.execute()
        return [GeneratedImage(**row) for row in result.data or []]
