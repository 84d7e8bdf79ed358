"""Read access to style templates (managed elsewhere)."""

import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from creative_studio.jobs.validation import TemplateField, parse_fields


class StyleTemplate(BaseModel):
    id: str
    name: str
    base_prompt: str
    reference_image_urls: List[str] = Field(default_factory=list)
    required_inputs: List[TemplateField] = Field(default_factory=list)

    @classmethod
    def from_row(cls, row: dict) -> "StyleTemplate":
        return cls(
            id=str(row["id"]),
            name=row.get("name") or "",
            base_prompt=row.get("base_prompt") or "",
            reference_image_urls=row.get("reference_image_urls") or [],
            required_inputs=parse_fields(row.get("required_inputs")),
        )


class TemplateRepository(ABC):
    @abstractmethod
    def get(self, template_id: str) -> Optional[StyleTemplate]:
        ...


class InMemoryTemplateRepository(TemplateRepository):
    def __init__(self, templates: Optional[List[StyleTemplate]] = None):
        self._lock = threading.Lock()
        self._templates: Dict[str, StyleTemplate] = {t.id: t for t in templates or []}

    def add(self, template: StyleTemplate) -> None:
        with self._lock:
            self._templates[template.id] = template

    def get(self, template_id):
        with self._lock:
            return self._templates.get(template_id)


class SupabaseTemplateRepository(TemplateRepository):
    """Rows in the ``style_templates`` table."""

    def __init__(self, client):
        self._client = client

    def get(self, template_id):
        result = (
            self._client.table("style_templates")
            .select("*")
            .eq("id", template_id)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None
        return StyleTemplate.from_row(result.data[0])
