"""Configuration management"""

import dataclasses
import getpass
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from nodessh.core.env import EnvManager
from nodessh.core.hosts import Node
from nodessh.transport.base import SSH_PORT
from nodessh.transport.bastion import RETRY_INTERVAL, RETRY_WINDOW
from nodessh.transport.ssh import DIAL_TIMEOUT

logger = logging.getLogger(__name__)

# Key file used for every provider when set
KEY_PATH_ENV = "KUBE_SSH_KEY_PATH"
USER_ENV = "KUBE_SSH_USER"
BASTION_ENV = "KUBE_SSH_BASTION"

# Provider family -> environment variable overriding its key file
KEY_ENV_VARS = {
    "gce": "GCE_SSH_KEY",
    "aws": "AWS_SSH_KEY",
    "local": "LOCAL_SSH_KEY",
    "skeleton": "KUBE_SSH_KEY",
}


@dataclass(frozen=True)
class SSHSettings:
    """Everything the signer resolver and executors read from the outside world

    Attributes:
        key_path: Key file used for every provider when set
        key_overrides: Provider family -> key file replacing the family default
        user: Remote user; empty means the invoking user
        bastion: Bastion "host:port"; empty means connect directly
        home: Home directory whose .ssh/ holds relative key files
        port: SSH port appended to node addresses
    """

    key_path: str = ""
    key_overrides: Mapping[str, str] = field(default_factory=dict)
    user: str = ""
    bastion: str = ""
    home: str = field(default_factory=lambda: os.path.expanduser("~"))
    port: int = SSH_PORT
    connect_timeout: float = DIAL_TIMEOUT
    retry_interval: float = RETRY_INTERVAL
    retry_window: float = RETRY_WINDOW

    @classmethod
    def from_env(cls, env: Union[EnvManager, Mapping[str, str], None] = None) -> "SSHSettings":
        """Build settings from environment variables

        Args:
            env: EnvManager or plain mapping (defaults to the process environment)
        """
        manager = env if isinstance(env, EnvManager) else EnvManager(env)
        overrides = {}
        for family, var in KEY_ENV_VARS.items():
            value = manager.lookup(var)
            if value:
                overrides[family] = value

        return cls(
            key_path=manager.lookup(KEY_PATH_ENV),
            key_overrides=overrides,
            user=manager.lookup(USER_ENV, "USER"),
            bastion=manager.lookup(BASTION_ENV),
            home=manager.lookup("HOME") or os.path.expanduser("~"),
        )

    @property
    def effective_user(self) -> str:
        """Configured remote user, else the invoking process's user"""
        return self.user or getpass.getuser()


class Config:
    """YAML configuration: provider, SSH settings and node inventory"""

    def __init__(self, config_file: str, env_files: Optional[List[str]] = None,
                 environ: Optional[Mapping[str, str]] = None):
        """Load configuration from YAML file

        Args:
            config_file: Path to configuration YAML file
            env_files: Environment files loaded before the config is expanded
            environ: Base environment (defaults to os.environ)
        """
        self.config_file = config_file
        self.data: Dict[str, Any] = {}
        self.env_manager = EnvManager(environ)
        self.env_manager.load_files(env_files or [])
        self.load()

    def load(self) -> None:
        """Load configuration from file and apply environment variable expansion"""
        try:
            with open(self.config_file, "r") as f:
                raw = yaml.safe_load(f) or {}
        except FileNotFoundError:
            logger.error(f"Configuration file not found: {self.config_file}")
            raise
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse configuration file: {e}")
            raise
        logger.info(f"Loaded configuration from {self.config_file}")

        env_from = raw.get("env_from") or []
        if isinstance(env_from, str):
            env_from = [env_from]
        self.env_manager.load_files(env_from)

        env_direct = raw.get("env") or {}
        if isinstance(env_direct, list):
            env_direct = dict(item.split("=", 1) for item in env_direct if "=" in item)
        self.env_manager.env.update({k: str(v) for k, v in env_direct.items()})

        try:
            self.data = self.env_manager.expand(raw)
        except ValueError as e:
            logger.error(f"Environment variable expansion failed: {e}")
            raise

    @property
    def provider(self) -> str:
        """Cloud provider name used to pick the SSH key"""
        return self.data.get("provider", "local")

    @property
    def ssh_settings(self) -> SSHSettings:
        """Environment-derived settings with the ``ssh`` section layered on top"""
        settings = SSHSettings.from_env(self.env_manager)
        section = self.data.get("ssh") or {}

        changes: Dict[str, Any] = {}
        for key in ("key_path", "user", "bastion", "home"):
            if section.get(key):
                changes[key] = str(section[key])
        if "port" in section:
            changes["port"] = int(section["port"])
        for key in ("connect_timeout", "retry_interval", "retry_window"):
            if key in section:
                changes[key] = float(section[key])
        if section.get("keys"):
            changes["key_overrides"] = {**settings.key_overrides, **self._key_overrides(section["keys"])}

        return dataclasses.replace(settings, **changes)

    def _key_overrides(self, keys: Mapping[str, Any]) -> Dict[str, str]:
        """Map ``ssh.keys`` entries, named by provider or family, onto families"""
        from nodessh.core.signer import PROVIDER_FAMILIES

        overrides = {}
        for name, path in keys.items():
            family = PROVIDER_FAMILIES.get(name)
            if family is None:
                logger.warning(f"Ignoring ssh.keys entry for unknown provider: {name}")
                continue
            # family entries win over provider aliases of the same family
            if name == family or family not in overrides:
                overrides[family] = str(path)
        return overrides

    @property
    def nodes(self) -> List[Node]:
        """Node inventory

        Returns:
            List of Node instances; entries without a name are skipped
        """
        nodes = []
        for entry in self.data.get("nodes") or []:
            if not entry.get("name"):
                logger.warning("Node missing 'name' field, skipping")
                continue
            nodes.append(Node.from_dict(entry))
        return nodes

    def validate(self) -> bool:
        """Validate configuration

        Returns:
            True if configuration is valid
        """
        from nodessh.core.signer import PROVIDER_FAMILIES

        if self.provider not in PROVIDER_FAMILIES:
            logger.error(f"Unsupported provider: {self.provider}")
            return False

        if not self.nodes:
            logger.error("No nodes specified")
            return False

        return True
