"""Locate and load the private key used to SSH to a provider's nodes"""

import logging
import os
from typing import Optional

import paramiko
from paramiko.pkey import UnknownKeyType

from nodessh.core.config import SSHSettings
from nodessh.errors import KeyLoadError, UnsupportedProviderError

logger = logging.getLogger(__name__)

# Provider -> family sharing one key convention
PROVIDER_FAMILIES = {
    "gce": "gce",
    "gke": "gce",
    "kubemark": "gce",
    "aws": "aws",
    "eks": "aws",
    "local": "local",
    "vsphere": "local",
    "skeleton": "skeleton",
}

DEFAULT_KEY_FILES = {
    "gce": "google_compute_engine",
    "aws": "kube_aws_rsa",
    "local": "id_rsa",
    "skeleton": "id_rsa",
}


def key_file_for(provider: str, settings: SSHSettings) -> str:
    """Path of the key file for ``provider``

    The global key_path wins outright. Otherwise the family default is used
    unless the family has an override; relative names live in ~/.ssh.

    Raises:
        UnsupportedProviderError: provider is not in PROVIDER_FAMILIES
    """
    if settings.key_path:
        return settings.key_path

    family = PROVIDER_FAMILIES.get(provider)
    if family is None:
        raise UnsupportedProviderError(provider)

    keyfile = settings.key_overrides.get(family) or DEFAULT_KEY_FILES[family]
    if not os.path.isabs(keyfile):
        keyfile = os.path.join(settings.home, ".ssh", keyfile)
    return keyfile


def load_signer(path: str) -> paramiko.PKey:
    """Load a private key of any type paramiko supports

    Raises:
        KeyLoadError: file missing, unreadable, encrypted or not a private key
    """
    if not os.path.isfile(path):
        raise KeyLoadError(path, "no such file")
    try:
        return paramiko.PKey.from_path(path)
    except (OSError, ValueError, TypeError, UnknownKeyType, paramiko.SSHException) as e:
        raise KeyLoadError(path, str(e) or e.__class__.__name__) from e


def resolve_signer(provider: str, settings: Optional[SSHSettings] = None) -> paramiko.PKey:
    """Return the signer to authenticate to ``provider`` nodes with

    Args:
        provider: Provider name (gce, aws, local, ...)
        settings: SSH settings (defaults to SSHSettings.from_env())
    """
    if settings is None:
        settings = SSHSettings.from_env()
    path = key_file_for(provider, settings)
    logger.debug(f"Loading SSH key for provider {provider} from {path}")
    return load_signer(path)
