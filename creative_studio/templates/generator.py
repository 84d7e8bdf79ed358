"""Template-driven generation.

Unlike lipsync and style jobs this flow has no job row: the request waits for
the image processor and returns the images directly.
"""

import base64
import logging
from typing import Any, Dict, List, Optional

from creative_studio.jobs.errors import TemplateNotFound
from creative_studio.jobs.validation import (
    ImageUploadField,
    clamp_variations,
    decode_base64_image,
    render_prompt,
    validate_template_input,
)
from creative_studio.processors.base import ImageProcessor
from creative_studio.templates.repository import TemplateRepository

logger = logging.getLogger(__name__)


class TemplateGenerator:
    def __init__(self, templates: TemplateRepository, processor: ImageProcessor,
                 default_size: str = "1024x1024"):
        self._templates = templates
        self._processor = processor
        self._default_size = default_size

    def generate(self, template_id: str, user_input: Dict[str, Any],
                 n: int = 1, size: Optional[str] = None) -> List[str]:
        """Validate input against the template's fields and return base64 PNGs."""
        template = self._templates.get(template_id)
        if template is None:
            raise TemplateNotFound(template_id)

        values = validate_template_input(template.required_inputs, user_input)
        image_keys = [
            f.id for f in template.required_inputs
            if isinstance(f, ImageUploadField) and f.id in values
        ]
        prompt = render_prompt(template.base_prompt, values, skip=image_keys)
        n = clamp_variations(n)
        size = size or self._default_size
        logger.info("Generating from template %s (%s), %d image input(s)",
                    template.id, template.name, len(image_keys))

        if image_keys:
            uploads = [decode_base64_image(str(values[k]), k) for k in image_keys]
            images = self._processor.edit(prompt, uploads, n, size)
        else:
            images = self._processor.generate(prompt, n, size)
        return [base64.b64encode(img).decode("ascii") for img in images]
