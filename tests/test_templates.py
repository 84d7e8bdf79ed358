import base64

import pytest

from creative_studio.jobs.errors import TemplateNotFound, ValidationFailed
from creative_studio.jobs.validation import ColorField, ImageUploadField, TextField
from creative_studio.templates.generator import TemplateGenerator
from creative_studio.templates.repository import InMemoryTemplateRepository, StyleTemplate

LOGO = base64.b64encode(b"logo-bytes").decode()

TEMPLATE_ROW = {
    "id": 7,
    "name": "Flash sale",
    "base_prompt": "Bold flash sale poster: {{headline}}, accent {{ accent }}. {{logo}}",
    "reference_image_urls": None,
    "required_inputs": [
        {"id": "headline", "type": "text", "label": "Headline", "required": True},
        {"id": "accent", "type": "color", "label": "Accent", "defaultValue": "#ff0055"},
        {"id": "logo", "type": "image_upload", "label": "Logo"},
    ],
}


@pytest.fixture
def templates():
    return InMemoryTemplateRepository([StyleTemplate.from_row(TEMPLATE_ROW)])


def test_template_row_parses_field_kinds():
    template = StyleTemplate.from_row(TEMPLATE_ROW)
    assert template.id == "7"
    assert template.reference_image_urls == []
    kinds = [type(f) for f in template.required_inputs]
    assert kinds == [TextField, ColorField, ImageUploadField]
    assert template.required_inputs[1].default_value == "#ff0055"


def test_text_only_template_calls_generate(templates, image_processor):
    generator = TemplateGenerator(templates, image_processor)

    images = generator.generate("7", {"headline": "50% off"}, n=2)

    op, prompt, _, n, size = image_processor.calls[0]
    assert op == "generate"
    assert prompt == "Bold flash sale poster: 50% off, accent #ff0055. "
    assert (n, size) == (2, "1024x1024")
    assert [base64.b64decode(img) for img in images] == [b"png-0", b"png-1"]


def test_image_inputs_go_to_edit_not_into_prompt(templates, image_processor):
    generator = TemplateGenerator(templates, image_processor, default_size="1024x1536")

    generator.generate("7", {"headline": "New in", "logo": f"data:image/png;base64,{LOGO}"}, n=9)

    op, prompt, uploads, n, size = image_processor.calls[0]
    assert op == "edit"
    assert LOGO not in prompt
    assert uploads == [b"logo-bytes"]
    assert (n, size) == (4, "1024x1536")


def test_unknown_template(templates, image_processor):
    with pytest.raises(TemplateNotFound, match="Template with ID 99 not found."):
        TemplateGenerator(templates, image_processor).generate("99", {})


def test_invalid_input_never_reaches_processor(templates, image_processor):
    with pytest.raises(ValidationFailed) as exc_info:
        TemplateGenerator(templates, image_processor).generate("7", {"accent": "blue"})

    assert exc_info.value.problems == [
        "Headline is required",
        "Accent must be a hex color like #1a2b3c",
    ]
    assert image_processor.calls == []
