"""Command templates for the Azure CLI calls.

Templates are plain text assets. Placeholders look like ``<APP-OBJECT-ID>``
and are replaced textually; JSON request bodies inside a template keep their
braces untouched.
"""
from __future__ import annotations

import re
from pathlib import Path
from typing import Mapping, Union

from .errors import TemplateError

PLACEHOLDER_PATTERN = re.compile(r"<([A-Z][A-Z0-9_-]*)>")

APP_NAME = "APP-NAME"
PORT = "PORT"
APP_OBJECT_ID = "APP-OBJECT-ID"
APP_ID = "APP-ID"
TENANT_NAME = "TENANT-NAME"
TENANT_ADMIN_ID = "TENANT-ADMIN-ID"
SP_OBJECT_ID = "SP-OBJECTID"


def render_template(template: str, params: Mapping[str, object]) -> str:
    """Substitute every placeholder in ``template`` from ``params``.

    Raises TemplateError if any placeholder has no matching parameter.
    """
    missing = [name for name in PLACEHOLDER_PATTERN.findall(template) if name not in params]
    if missing:
        raise TemplateError(missing)

    return PLACEHOLDER_PATTERN.sub(lambda match: str(params[match.group(1)]), template).strip()


def load_template(templates_dir: Union[str, Path], name: str) -> str:
    path = Path(templates_dir) / name
    with path.open("r", encoding="utf-8") as handle:
        return handle.read()
