"""
Template rendering utilities
"""

from pathlib import Path

from fastapi import Request
from fastapi.templating import Jinja2Templates

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
STATIC_DIR = Path(__file__).resolve().parent / "static"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


def render_template(
    request: Request, template_name: str, context: dict | None = None, status_code: int = 200
):
    """Render template with context"""
    return templates.TemplateResponse(
        request, template_name, context or {}, status_code=status_code
    )
