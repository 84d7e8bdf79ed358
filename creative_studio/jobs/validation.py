"""Input validation for job submissions and template-driven forms.

All checks run before a job row is created or anything is uploaded.
"""

import base64
import binascii
import os
import re
from dataclasses import dataclass
from typing import Annotated, Any, Dict, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, Field, TypeAdapter

from creative_studio.jobs.errors import ValidationFailed

MIB = 1024 * 1024


@dataclass
class MediaUpload:
    """A file received from the client, spooled to ``path`` on local disk.

    ``size`` counts the bytes received, which can exceed what was written to
    ``path`` when the reader stopped early on an oversized upload.
    """
    field: str
    filename: Optional[str]
    content_type: Optional[str]
    size: int
    path: Optional[str] = None

    def discard(self) -> None:
        if self.path and os.path.exists(self.path):
            os.remove(self.path)


@dataclass(frozen=True)
class MediaRequirement:
    field: str
    mime_prefix: str
    max_bytes: int


def _format_size(num_bytes: int) -> str:
    if num_bytes >= MIB:
        return f"{num_bytes // MIB} MB"
    return f"{num_bytes} bytes"


def validate_media(
    uploads: Dict[str, Optional[MediaUpload]],
    requirements: Sequence[MediaRequirement],
) -> None:
    """Check presence, MIME category and size of every required upload.

    Raises ValidationFailed listing each constraint that failed.
    """
    problems: List[str] = []
    for req in requirements:
        upload = uploads.get(req.field)
        if upload is None or upload.size == 0:
            problems.append(f"{req.field} is required")
            continue
        if not (upload.content_type or "").startswith(req.mime_prefix):
            problems.append(
                f"{req.field} must be a {req.mime_prefix.rstrip('/')} file "
                f"(got {upload.content_type or 'unknown type'})"
            )
        if upload.size > req.max_bytes:
            problems.append(
                f"{req.field} exceeds the maximum size of {_format_size(req.max_bytes)}"
            )
    if problems:
        raise ValidationFailed(problems)


def decode_base64_image(value: str, label: str) -> bytes:
    """Decode a raw or ``data:`` URI base64 image."""
    data = value.split(",", 1)[1] if value.startswith("data:") else value
    if not data:
        raise ValidationFailed([f"Invalid base64 string for {label}"])
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationFailed([f"Invalid base64 string for {label}"])


def clamp_variations(n: Any, upper: int = 4) -> int:
    try:
        value = int(n)
    except (TypeError, ValueError):
        value = 1
    return min(upper, max(1, value))


# ---------------------------------------------------------------------------
# Template field descriptors
# ---------------------------------------------------------------------------

class _FieldBase(BaseModel):
    id: str
    label: str = ""
    required: bool = False
    default_value: Optional[Any] = Field(default=None, alias="defaultValue")

    model_config = {"populate_by_name": True}


class TextField(_FieldBase):
    type: Literal["text"] = "text"
    max_length: Optional[int] = Field(default=None, alias="maxLength")


class NumberField(_FieldBase):
    type: Literal["number"] = "number"
    min: Optional[float] = None
    max: Optional[float] = None


class ColorField(_FieldBase):
    type: Literal["color"] = "color"


class ImageUploadField(_FieldBase):
    type: Literal["image_upload"] = "image_upload"


TemplateField = Annotated[
    Union[TextField, NumberField, ColorField, ImageUploadField],
    Field(discriminator="type"),
]

_fields_adapter = TypeAdapter(List[TemplateField])

_COLOR_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")
_PLACEHOLDER_RE = re.compile(r"{{\s*(\w+)\s*}}")


def parse_fields(raw: Optional[list]) -> List[TemplateField]:
    return _fields_adapter.validate_python(raw or [])


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_template_input(
    fields: Sequence[TemplateField], values: Dict[str, Any]
) -> Dict[str, Any]:
    """Apply defaults and per-kind constraints; returns the cleaned values.

    Keys not described by a field are passed through untouched.
    """
    cleaned = dict(values)
    problems: List[str] = []
    for field in fields:
        value = cleaned.get(field.id)
        if _is_blank(value) and field.default_value is not None:
            value = field.default_value
        if _is_blank(value):
            if field.required:
                problems.append(f"{field.label or field.id} is required")
            cleaned.pop(field.id, None)
            continue

        if isinstance(field, NumberField):
            try:
                number = float(value)
            except (TypeError, ValueError):
                problems.append(f"{field.label or field.id} must be a number")
                continue
            if field.min is not None and number < field.min:
                problems.append(f"{field.label or field.id} must be >= {field.min:g}")
            if field.max is not None and number > field.max:
                problems.append(f"{field.label or field.id} must be <= {field.max:g}")
            value = int(number) if number.is_integer() else number
        elif isinstance(field, ColorField):
            if not isinstance(value, str) or not _COLOR_RE.match(value):
                problems.append(f"{field.label or field.id} must be a hex color like #1a2b3c")
        elif isinstance(field, ImageUploadField):
            try:
                decode_base64_image(str(value), field.label or field.id)
            except ValidationFailed as exc:
                problems.extend(exc.problems)
        else:
            value = str(value)
            if field.max_length is not None and len(value) > field.max_length:
                problems.append(
                    f"{field.label or field.id} must be at most {field.max_length} characters"
                )
        cleaned[field.id] = value
    if problems:
        raise ValidationFailed(problems)
    return cleaned


def render_prompt(base_prompt: str, values: Dict[str, Any], skip: Sequence[str] = ()) -> str:
    """Substitute ``{{ key }}`` placeholders; unmatched placeholders are removed."""
    def _sub(match):
        key = match.group(1)
        if key in skip or key not in values or values[key] is None:
            return ""
        return str(values[key])

    return _PLACEHOLDER_RE.sub(_sub, base_prompt)
