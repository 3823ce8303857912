"""Reads and updates the add-in project files around a registration.

Covers the manifest display name, the application id written back into the
manifest, ``.env`` and fallback dialog, and the secret store.
"""
from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Iterable, Optional, Union

from dotenv import dotenv_values, set_key

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_DIALOGS = (
    Path("src/helpers/fallbackauthdialog.js"),
    Path("src/helpers/fallbackauthdialog.ts"),
)

_WEB_APP_INFO = re.compile(r"<WebApplicationInfo>.*?</WebApplicationInfo>", re.DOTALL)
_ID_ELEMENT = re.compile(r"<Id>.*?</Id>", re.DOTALL)
_RESOURCE_ELEMENT = re.compile(r"<Resource>.*?</Resource>", re.DOTALL)
_CLIENT_ID = re.compile(r"""clientId:\s*(["']).*?\1""")


def read_manifest_display_name(manifest_path: Union[str, Path]) -> str:
    root = ET.parse(str(manifest_path)).getroot()
    element = root.find("{*}DisplayName")
    if element is None:
        element = root.find("DisplayName")
    if element is None or not element.get("DefaultValue"):
        raise ValueError(f"No DisplayName found in manifest {manifest_path}")
    return element.get("DefaultValue", "")


def _ensure_file(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.touch(exist_ok=True)


class ApplicationDataWriter:
    """Writes the registered application id into the add-in project."""

    def __init__(
        self,
        env_file: Optional[Path] = None,
        fallback_dialogs: Iterable[Path] = DEFAULT_FALLBACK_DIALOGS,
    ):
        self.env_file = env_file
        self.fallback_dialogs = list(fallback_dialogs)

    def write(self, app_id: str, port: str, manifest_path: Union[str, Path]) -> None:
        manifest = Path(manifest_path)
        project_root = manifest.resolve().parent
        self.update_manifest(manifest, app_id, port)
        self.update_env_file(self.env_file or project_root / ".env", app_id, port)
        for dialog in self.fallback_dialogs:
            dialog_path = dialog if dialog.is_absolute() else project_root / dialog
            if dialog_path.exists():
                self.update_fallback_dialog(dialog_path, app_id)

    @staticmethod
    def update_manifest(manifest: Path, app_id: str, port: str) -> None:
        content = manifest.read_text(encoding="utf-8")
        match = _WEB_APP_INFO.search(content)
        if match is None:
            logger.warning("Manifest %s has no WebApplicationInfo section", manifest)
            return

        block = _ID_ELEMENT.sub(f"<Id>{app_id}</Id>", match.group(0), count=1)
        block = _RESOURCE_ELEMENT.sub(f"<Resource>api://localhost:{port}/{app_id}</Resource>", block, count=1)
        manifest.write_text(content[: match.start()] + block + content[match.end():], encoding="utf-8")

    @staticmethod
    def update_env_file(env_file: Path, app_id: str, port: str) -> None:
        _ensure_file(env_file)
        set_key(str(env_file), "CLIENT_ID", app_id, quote_mode="never")
        set_key(str(env_file), "PORT", port, quote_mode="never")

    @staticmethod
    def update_fallback_dialog(dialog: Path, app_id: str) -> None:
        content = dialog.read_text(encoding="utf-8")
        dialog.write_text(_CLIENT_ID.sub(f'clientId: "{app_id}"', content, count=1), encoding="utf-8")


class DotenvCredentialStore:
    """Stores issued application secrets in an env file, keyed by app name."""

    def __init__(self, path: Path):
        self.path = path

    @staticmethod
    def key_for(app_name: str) -> str:
        """Env key for ``app_name``.

        Case and punctuation are folded, so "Contoso Add-in" and "contoso add in"
        share a key. Names without any letters or digits are rejected.
        """
        suffix = re.sub(r"[^A-Za-z0-9]+", "_", app_name).strip("_").upper()
        if not suffix:
            raise ValueError(f"Application name {app_name!r} has no letters or digits to key a secret on")
        return "SSO_SECRET_" + suffix

    def __call__(self, app_name: str, secret: str) -> None:
        key = self.key_for(app_name)
        _ensure_file(self.path)
        set_key(str(self.path), key, secret)
        logger.info("Stored application secret for %s in %s", app_name, self.path)

    def get(self, app_name: str) -> Optional[str]:
        if not self.path.exists():
            return None
        return dotenv_values(str(self.path)).get(self.key_for(app_name))
