"""Environment variables: env file loading and ${VAR} expansion"""

import logging
import os
import re
from typing import Any, Dict, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)

# ${NAME}, ${NAME:-default}, ${NAME:?message} or $NAME
_VAR_PATTERN = re.compile(
    r"\$\{(?P<braced>[A-Za-z_][A-Za-z0-9_]*)(?:(?P<op>:-|:\?)(?P<arg>[^}]*))?\}"
    r"|\$(?P<bare>[A-Za-z_][A-Za-z0-9_]*)"
)


class EnvManager:
    """Environment view that env files can extend without touching os.environ"""

    def __init__(self, base: Optional[Mapping[str, str]] = None):
        """Initialize from ``base`` (defaults to the process environment)"""
        self.env: Dict[str, str] = dict(os.environ if base is None else base)

    def lookup(self, *names: str) -> str:
        """Return the first non-empty value among ``names``, or ''"""
        for name in names:
            value = self.env.get(name, "")
            if value:
                return value
        return ""

    def load_file(self, file_path: str) -> Dict[str, str]:
        """Read KEY=VALUE lines from a .env file into the environment

        Blank lines and '#' comments are skipped; matching surrounding quotes
        are stripped from values. A missing file is logged and ignored.

        Returns:
            Variables read from the file
        """
        file_path = os.path.expanduser(file_path)
        variables: Dict[str, str] = {}

        if not os.path.exists(file_path):
            logger.warning(f"Environment file not found: {file_path}")
            return variables

        with open(file_path, "r") as f:
            for line_num, raw in enumerate(f, 1):
                line = raw.strip()
                if not line or line.startswith("#"):
                    continue
                if line.startswith("export "):
                    line = line[len("export "):]
                key, sep, value = line.partition("=")
                if not sep:
                    logger.warning(f"Ignoring invalid line {file_path}:{line_num}")
                    continue
                value = value.strip()
                if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
                    value = value[1:-1]
                variables[key.strip()] = value

        logger.info(f"Loaded {len(variables)} variables from {file_path}")
        self.env.update(variables)
        return variables

    def load_files(self, file_paths: Iterable[str]) -> None:
        """Load several env files; later files win"""
        for file_path in file_paths:
            self.load_file(file_path)

    def expand(self, value: Any) -> Any:
        """Expand variable references in strings, recursing into dicts and lists

        Raises:
            ValueError: A ${NAME:?message} reference names an unset variable
        """
        if isinstance(value, str):
            return _VAR_PATTERN.sub(self._replace, value)
        if isinstance(value, dict):
            return {key: self.expand(item) for key, item in value.items()}
        if isinstance(value, list):
            return [self.expand(item) for item in value]
        return value

    def _replace(self, match: "re.Match") -> str:
        name = match.group("braced") or match.group("bare")
        op = match.group("op")
        if op == ":-":
            return self.env.get(name) or match.group("arg")
        if op == ":?":
            if name not in self.env:
                raise ValueError(f"Required variable not set: {name} ({match.group('arg')})")
            return self.env[name]
        # unknown variables are left as written
        return self.env.get(name, match.group(0))
