"""Engine configuration loaded from YAML with environment overrides."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from passkey_identity.storage.session_store import SESSION_STORAGE_KEY

CONFIG_ENV_VAR: str = "PASSKEY_IDENTITY_CONFIG"
AUTHORITY_URL_ENV_VAR: str = "PASSKEY_IDENTITY_AUTHORITY_URL"
DEFAULT_CONFIG_FILE: str = "passkey-identity.yaml"


class EngineConfig(BaseModel):
    """Settings for the authentication engine and its default collaborators.

    An unset ``authority_url`` leaves the engine without a channel to the
    remote authority; every login then fails with ``ChannelNotReady``.
    """

    authority_url: Optional[str] = None
    timeout: float = Field(default=30.0, gt=0)
    retry_times: int = Field(default=2, ge=0)
    is_local_network: bool = False
    storage_dir: Optional[Path] = None
    storage_key: str = SESSION_STORAGE_KEY
    expiration_hint_ms: Optional[int] = Field(default=None, gt=0)


def load_config(path: Optional[str] = None) -> EngineConfig:
    """Build an :class:`EngineConfig` from a YAML file and the environment.

    Parameters
    ----------
    path:
        Config file to read. When omitted, the file named by
        ``PASSKEY_IDENTITY_CONFIG`` is used, then ``passkey-identity.yaml``
        in the working directory.

    Returns
    -------
    EngineConfig
        Settings from the file, or defaults when the file does not exist.
        ``PASSKEY_IDENTITY_AUTHORITY_URL`` overrides ``authority_url``.

    Raises
    ------
    pydantic.ValidationError
        If the file holds values outside the accepted ranges.
    """
    source = Path(path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_FILE)
    settings: dict = {}
    if source.is_file():
        settings = yaml.safe_load(source.read_text(encoding="utf-8")) or {}

    authority_url = os.environ.get(AUTHORITY_URL_ENV_VAR)
    if authority_url:
        settings["authority_url"] = authority_url
    return EngineConfig.model_validate(settings)
