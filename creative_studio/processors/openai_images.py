"""OpenAI image generation client (synchronous-wait processor)."""

import base64
import logging
from typing import List, Optional

from openai import OpenAI, OpenAIError

from creative_studio.jobs.errors import ProcessorError
from creative_studio.processors.base import ImageProcessor

logger = logging.getLogger(__name__)

# Appended to every style-replication prompt.
STYLE_REPLICATION_INSTRUCTIONS = """
INSTRUCTIONS FOR STYLE REPLICATION:
- Font Style: Replicate the exact font style, including typeface, weight, kerning, leading, and any typographic treatments present in the reference images.
- Texture & Material: Reproduce the surface textures, material qualities and overall finish seen in the reference images.
- Lighting & Shadows: Match the direction, intensity, softness and color temperature of the light sources, and the resulting shadows, highlights and reflections.
- Color Palette: Adhere to the exact color palette of the reference images, including hue, saturation and brightness.
- Composition & Placement: Replicate the compositional structure, balance, framing and the placement, scale and orientation of elements.
- Overall Aesthetic: Capture the mood, artistic style and visual essence of the reference images so the result belongs to the same set.
"""


class OpenAIImageProcessor(ImageProcessor):
    def __init__(self, api_key: Optional[str], model: str, edit_model: Optional[str] = None):
        if not api_key:
            raise RuntimeError("OPENAI_API_KEY must be set for image generation")
        self._client = OpenAI(api_key=api_key)
        self._model = model
        self._edit_model = edit_model or model

    def _decode(self, response) -> List[bytes]:
        items = getattr(response, "data", None) or []
        images = [base64.b64decode(item.b64_json) for item in items if item.b64_json]
        if not images:
            raise ProcessorError("OpenAI response did not contain valid image data")
        return images

    def generate(self, prompt, n, size):
        kwargs = {"model": self._model, "prompt": prompt, "n": n, "size": size}
        if self._model.startswith("dall-e"):
            kwargs["response_format"] = "b64_json"
        try:
            response = self._client.images.generate(**kwargs)
        except OpenAIError as exc:
            raise ProcessorError(f"OpenAI API request failed: {exc}") from exc
        return self._decode(response)

    def edit(self, prompt, images, n, size):
        files = [(f"image{i}.png", data, "image/png") for i, data in enumerate(images)]
        logger.info("Calling %s edit with %d reference image(s)", self._edit_model, len(files))
        try:
            response = self._client.images.edit(
                model=self._edit_model,
                image=files,
                prompt=prompt,
                n=n,
                size=size,
            )
        except OpenAIError as exc:
            raise ProcessorError(f"OpenAI API request failed: {exc}") from exc
        return self._decode(response)
