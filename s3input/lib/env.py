"""Environment variable utilities.

Provides expansion of ${VAR_NAME} patterns in configuration values,
loading of .env files, parsing of legacy credential files and
resolution of the executor identity.

Uses python-dotenv for .env and credential file parsing.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from dotenv import dotenv_values, load_dotenv

__all__ = [
    "expand_env_vars",
    "expand_options",
    "load_env_file",
    "read_credentials_file",
    "resolve_executor_id",
]

# Pattern for ${VAR_NAME} or $VAR_NAME
ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def load_env_file(
    path: Optional[Union[str, Path]] = None,
    *,
    override: bool = False,
) -> bool:
    """Load environment variables from a .env file.

    Args:
        path: Path to .env file. If None, searches for .env in current
              directory and parent directories.
        override: If True, override existing environment variables.

    Returns:
        True if a .env file was found and loaded, False otherwise.
    """
    return load_dotenv(dotenv_path=path, override=override)


def expand_env_vars(
    value: str,
    *,
    strict: bool = False,
    environ: Optional[Mapping[str, str]] = None,
) -> str:
    """Expand environment variables in a string.

    Supports both ${VAR_NAME} and $VAR_NAME syntax.

    Args:
        value: String potentially containing env var references
        strict: If True, raise KeyError for missing variables
        environ: Mapping to resolve from (defaults to os.environ)

    Returns:
        String with environment variables expanded

    Example:
        >>> expand_env_vars("${BUCKET}-backup", environ={"BUCKET": "logs"})
        'logs-backup'
    """
    env = os.environ if environ is None else environ

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1) or match.group(2)
        env_value = env.get(var_name)
        if env_value is None:
            if strict:
                raise KeyError(f"Environment variable not set: {var_name}")
            return str(match.group(0))
        return env_value

    return ENV_VAR_PATTERN.sub(replacer, value)


def expand_options(
    options: Dict[str, Any],
    *,
    strict: bool = False,
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """Recursively expand environment variables in an options dict.

    Args:
        options: Dictionary of options
        strict: If True, raise KeyError for missing variables
        environ: Mapping to resolve from (defaults to os.environ)

    Returns:
        New dictionary with env vars expanded in string values
    """
    result: Dict[str, Any] = {}

    for key, value in options.items():
        if isinstance(value, str):
            result[key] = expand_env_vars(value, strict=strict, environ=environ)
        elif isinstance(value, dict):
            result[key] = expand_options(value, strict=strict, environ=environ)
        elif isinstance(value, list):
            result[key] = [
                expand_env_vars(item, strict=strict, environ=environ)
                if isinstance(item, str)
                else item
                for item in value
            ]
        else:
            result[key] = value

    return result


def read_credentials_file(path: Union[str, Path]) -> Tuple[Optional[str], Optional[str]]:
    """Read AWS keys from a KEY=VALUE credentials file.

    Lines starting with ``#`` are ignored. Only ``AWS_ACCESS_KEY_ID``
    and ``AWS_SECRET_ACCESS_KEY`` are used.

    Args:
        path: Path to the credentials file

    Returns:
        Tuple of (access_key_id, secret_access_key); missing keys are None

    Raises:
        FileNotFoundError: If the file does not exist
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Credentials file not found: {path}")

    values = dotenv_values(path)
    return values.get("AWS_ACCESS_KEY_ID"), values.get("AWS_SECRET_ACCESS_KEY")


def resolve_executor_id(
    env_var: str,
    environ: Optional[Mapping[str, str]] = None,
) -> Optional[str]:
    """Read this executor's identity from the environment.

    Called once while loading configuration; the engine never consults
    the environment after that.

    Args:
        env_var: Name of the variable holding the identity (e.g. "ID")
        environ: Mapping to resolve from (defaults to os.environ)

    Returns:
        The raw identity string, or None when unset or blank
    """
    env = os.environ if environ is None else environ
    value = env.get(env_var)
    if value is None or not value.strip():
        return None
    return value.strip()
