"""Environment variable loading and ${VAR} expansion for configuration files"""

import logging
import os
import re
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

_BRACED_RE = re.compile(r"\$\{([^}]+)\}")
_BARE_RE = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)")


class EnvManager:
    """Holds the variables available to configuration expansion

    Starts from the process environment; .env files and the config's own
    ``env`` section are layered on top by the caller.
    """

    def __init__(self):
        self.env: Dict[str, str] = dict(os.environ)

    def load_file(self, file_path: str) -> Dict[str, str]:
        """Load KEY=VALUE lines from a .env file

        Blank lines and '#' comments are skipped; one level of matching
        quotes around a value is removed.

        Args:
            file_path: Path to .env file

        Returns:
            Dictionary of loaded variables (empty if the file is missing)
        """
        file_path = os.path.expanduser(file_path)
        variables: Dict[str, str] = {}

        if not os.path.exists(file_path):
            logger.warning(f"Environment file not found: {file_path}")
            return variables

        with open(file_path, "r") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                if "=" not in line:
                    logger.warning(f"Invalid line in {file_path}:{line_num}: {line}")
                    continue

                key, value = (part.strip() for part in line.split("=", 1))
                if len(value) >= 2 and value[0] in ('"', "'") and value[-1] == value[0]:
                    value = value[1:-1]
                variables[key] = value

        logger.info(f"Loaded {len(variables)} variables from {file_path}")
        return variables

    def load_files(self, file_paths: List[str]) -> Dict[str, str]:
        """Load several .env files; later files override earlier ones"""
        merged: Dict[str, str] = {}
        for file_path in file_paths:
            merged.update(self.load_file(file_path))
        return merged

    @staticmethod
    def expand_value(value: Any, variables: Dict[str, str]) -> Any:
        """Expand $VAR, ${VAR}, ${VAR:-default} and ${VAR:?message} in a string

        Unknown plain variables are left as written.

        Raises:
            ValueError: If a ${VAR:?message} variable is not set
        """
        if not isinstance(value, str):
            return value

        def replace_braced(match):
            expr = match.group(1)
            if ":-" in expr:
                name, default = expr.split(":-", 1)
                return variables.get(name.strip(), default)
            if ":?" in expr:
                name, message = expr.split(":?", 1)
                name = name.strip()
                if name not in variables:
                    raise ValueError(f"Required variable not set: {name} ({message})")
                return variables[name]
            return variables.get(expr, match.group(0))

        result = _BRACED_RE.sub(replace_braced, value)
        return _BARE_RE.sub(lambda m: variables.get(m.group(1), m.group(0)), result)

    @staticmethod
    def expand_dict(config: Dict, variables: Dict[str, str]) -> Dict:
        """Recursively expand variables in every string of a configuration mapping"""
        def expand(value):
            if isinstance(value, dict):
                return {k: expand(v) for k, v in value.items()}
            if isinstance(value, list):
                return [expand(item) for item in value]
            return EnvManager.expand_value(value, variables)

        return expand(config)
