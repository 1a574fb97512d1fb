"""YAML configuration loader for the S3 input.

Example YAML (access_logs.yaml):
    input:
      bucket: my-access-logs
      region: eu-west-1
      prefix: "logs/%YYYYMMDD%/"
      backup_to_bucket: my-access-logs-archive
      backup_add_prefix: processed/
      delete: true
      interval: 30
      exclude_pattern: "^tmp/"
      total_executors: 4
      codec: json_lines
      tags: [s3, access]

Usage:
    # Command line
    s3input run ./access_logs.yaml

    # Python API
    from s3input.lib.config import load_config
    config = load_config("./access_logs.yaml")
"""

from __future__ import annotations

import codecs
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Pattern, Tuple, Union

import yaml

from s3input.lib.checkpoint import default_checkpoint_path
from s3input.lib.env import expand_options, read_credentials_file, resolve_executor_id
from s3input.lib.errors import ConfigurationError
from s3input.lib.partition import HASHERS
from s3input.lib.postprocess import BackupPolicy

logger = logging.getLogger(__name__)

__all__ = [
    "InputConfig",
    "load_config",
    "parse_date",
]

VALID_CODECS = ("line", "json_lines")
VALID_STORAGE = ("s3", "local")

_BOOL_FIELDS = ("delete", "dry_run", "backfill_full_range", "download_to_disk")
_STR_FIELDS = (
    "region",
    "endpoint_url",
    "access_key_id",
    "secret_access_key",
    "credentials_file",
    "prefix",
    "sincedb_path",
    "backup_to_bucket",
    "backup_add_prefix",
    "backup_to_dir",
    "exclude_pattern",
    "type",
    "local_root",
)
_KNOWN_FIELDS = frozenset(
    _BOOL_FIELDS
    + _STR_FIELDS
    + (
        "bucket",
        "interval",
        "start_date",
        "end_date",
        "total_executors",
        "executor_id_env",
        "hash_function",
        "codec",
        "charset",
        "tags",
        "add_field",
        "storage",
    )
)


def parse_date(value: Any, field_name: str) -> Optional[datetime]:
    """Parse a start/end date option into an aware UTC datetime.

    Accepts ``YYYY-MM-DD``, ISO-8601 datetimes, and the date/datetime
    objects PyYAML produces for unquoted values.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    elif hasattr(value, "year") and hasattr(value, "month"):
        parsed = datetime(value.year, value.month, value.day)
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            raise ConfigurationError(
                f"Invalid {field_name}; expected YYYY-MM-DD or an ISO-8601 datetime",
                field=field_name,
                value=value,
            ) from None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_bool(value: Any, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "yes", "1", "on"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "no", "0", "off", ""):
        return False
    raise ConfigurationError(f"{field_name} must be a boolean", field=field_name, value=value)


def _parse_int(value: Any, field_name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"{field_name} must be an integer", field=field_name, value=value
        ) from None


@dataclass(frozen=True)
class InputConfig:
    """Validated, immutable input configuration.

    Build with :meth:`from_dict` or :func:`load_config`; both resolve
    environment references, credential files and the executor identity
    once, up front.
    """

    bucket: str
    region: Optional[str] = None
    endpoint_url: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    prefix: Optional[str] = None
    sincedb_path: Optional[str] = None
    backup_to_bucket: Optional[str] = None
    backup_add_prefix: Optional[str] = None
    backup_to_dir: Optional[str] = None
    delete: bool = False
    interval: float = 60.0
    exclude_pattern: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    backfill_full_range: bool = False
    dry_run: bool = False
    total_executors: int = 1
    executor_id: Optional[int] = None
    hash_function: str = "polynomial31"
    download_to_disk: bool = False
    codec: str = "line"
    charset: str = "utf-8"
    type: Optional[str] = None
    tags: Tuple[str, ...] = ()
    add_field: Dict[str, str] = field(default_factory=dict)
    storage: str = "s3"
    local_root: Optional[str] = None

    def __post_init__(self) -> None:
        self.validate()

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def executor_slot(self) -> int:
        """Partition this executor owns (0 when no identity is set)."""
        return self.executor_id if self.executor_id is not None else 0

    @property
    def backup_policy(self) -> BackupPolicy:
        return BackupPolicy(
            backup_bucket=self.backup_to_bucket,
            backup_prefix=self.backup_add_prefix or "",
            backup_dir=self.backup_to_dir,
            delete=self.delete,
        )

    @property
    def materialize_objects(self) -> bool:
        """Whether objects are downloaded to a local file before decoding."""
        return self.download_to_disk or self.backup_to_dir is not None

    @property
    def checkpoint_path(self) -> Path:
        if self.sincedb_path:
            return Path(self.sincedb_path).expanduser()
        return default_checkpoint_path(self.bucket, self.prefix, self.executor_id)

    @property
    def exclude_regex(self) -> Optional[Pattern[str]]:
        return re.compile(self.exclude_pattern) if self.exclude_pattern else None

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> None:
        """Raise ConfigurationError for invalid or contradictory settings."""
        if not self.bucket:
            raise ConfigurationError("bucket is required", field="bucket")

        if self.interval < 0:
            raise ConfigurationError(
                "interval must be >= 0 seconds", field="interval", value=self.interval
            )

        if self.total_executors < 1:
            raise ConfigurationError(
                "total_executors must be >= 1",
                field="total_executors",
                value=self.total_executors,
            )

        if self.executor_id is not None and not 0 <= self.executor_id < self.total_executors:
            raise ConfigurationError(
                f"Executor identity must be in [0, {self.total_executors})",
                field="executor_id",
                value=self.executor_id,
                suggestion="Give each executor a distinct ID below total_executors.",
            )

        if self.exclude_pattern:
            try:
                re.compile(self.exclude_pattern)
            except re.error as e:
                raise ConfigurationError(
                    f"exclude_pattern is not a valid regular expression: {e}",
                    field="exclude_pattern",
                    value=self.exclude_pattern,
                ) from None

        if self.start_date and self.end_date and self.start_date >= self.end_date:
            raise ConfigurationError(
                "start_date must be before end_date",
                field="start_date",
                details={
                    "start_date": self.start_date.isoformat(),
                    "end_date": self.end_date.isoformat(),
                },
            )

        if (
            self.backup_to_bucket
            and self.backup_to_bucket == self.bucket
            and not self.backup_add_prefix
        ):
            raise ConfigurationError(
                "Backing up into the source bucket requires backup_add_prefix",
                field="backup_add_prefix",
                suggestion=(
                    "Without a prefix the backup copy would overwrite the source "
                    "object (and delete would remove it)."
                ),
            )

        if self.hash_function not in HASHERS:
            raise ConfigurationError(
                f"Unknown hash_function. Valid options: {', '.join(sorted(HASHERS))}",
                field="hash_function",
                value=self.hash_function,
            )

        if self.codec not in VALID_CODECS:
            raise ConfigurationError(
                f"Unknown codec. Valid options: {', '.join(VALID_CODECS)}",
                field="codec",
                value=self.codec,
            )

        try:
            codecs.lookup(self.charset)
        except LookupError:
            raise ConfigurationError(
                "Unknown charset", field="charset", value=self.charset
            ) from None

        if self.storage not in VALID_STORAGE:
            raise ConfigurationError(
                f"Unknown storage. Valid options: {', '.join(VALID_STORAGE)}",
                field="storage",
                value=self.storage,
            )

        if self.storage == "local" and not self.local_root:
            raise ConfigurationError(
                "local_root is required when storage is 'local'", field="local_root"
            )

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        environ: Optional[Mapping[str, str]] = None,
        config_dir: Optional[Path] = None,
    ) -> "InputConfig":
        """Create a configuration from a parsed ``input`` section.

        Args:
            data: Option mapping (the YAML ``input`` section)
            environ: Environment to expand ``${VAR}`` references and read the
                executor identity from (defaults to os.environ)
            config_dir: Directory relative file paths are resolved against

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not isinstance(data, Mapping):
            raise ConfigurationError("input section must be a mapping")

        unknown = sorted(set(data) - _KNOWN_FIELDS)
        if unknown:
            raise ConfigurationError(
                f"Unknown option(s): {', '.join(unknown)}",
                details={"valid_options": ", ".join(sorted(_KNOWN_FIELDS))},
            )

        options = expand_options(dict(data), environ=environ)
        kwargs: Dict[str, Any] = {"bucket": options.get("bucket") or ""}

        for name in _STR_FIELDS:
            value = options.get(name)
            if value is not None and value != "":
                kwargs[name] = str(value)

        for name in _BOOL_FIELDS:
            if name in options:
                kwargs[name] = _parse_bool(options[name], name)

        if "interval" in options:
            try:
                kwargs["interval"] = float(options["interval"])
            except (TypeError, ValueError):
                raise ConfigurationError(
                    "interval must be a number of seconds",
                    field="interval",
                    value=options["interval"],
                ) from None

        if "total_executors" in options:
            kwargs["total_executors"] = _parse_int(options["total_executors"], "total_executors")

        kwargs["start_date"] = parse_date(options.get("start_date"), "start_date")
        kwargs["end_date"] = parse_date(options.get("end_date"), "end_date")

        for name in ("hash_function", "codec", "charset", "storage"):
            if options.get(name):
                kwargs[name] = str(options[name])

        tags = options.get("tags") or []
        if isinstance(tags, str):
            tags = [tags]
        kwargs["tags"] = tuple(str(t) for t in tags)

        add_field = options.get("add_field") or {}
        if not isinstance(add_field, Mapping):
            raise ConfigurationError("add_field must be a mapping", field="add_field")
        kwargs["add_field"] = {str(k): str(v) for k, v in add_field.items()}

        executor_env = str(options.get("executor_id_env") or "ID")
        raw_id = resolve_executor_id(executor_env, environ)
        if raw_id is not None:
            kwargs["executor_id"] = _parse_int(raw_id, executor_env)

        credentials_file = kwargs.pop("credentials_file", None)
        if credentials_file and not kwargs.get("access_key_id"):
            path = Path(credentials_file).expanduser()
            if config_dir is not None and not path.is_absolute():
                path = config_dir / path
            try:
                access_key, secret_key = read_credentials_file(path)
            except FileNotFoundError as e:
                raise ConfigurationError(
                    str(e), field="credentials_file", value=credentials_file
                ) from None
            kwargs["access_key_id"] = access_key
            kwargs["secret_access_key"] = secret_key

        if config_dir is not None:
            for name in ("sincedb_path", "backup_to_dir", "local_root"):
                value = kwargs.get(name)
                if value and value.startswith(("./", "../")):
                    kwargs[name] = str(config_dir / value)

        if kwargs.get("backup_add_prefix") and not kwargs.get("backup_to_bucket"):
            logger.warning("backup_add_prefix has no effect without backup_to_bucket")

        if kwargs.get("start_date") and not kwargs.get("end_date"):
            logger.warning("start_date has no effect without end_date; no backfill will run")

        if kwargs.get("total_executors", 1) > 1 and "executor_id" not in kwargs:
            logger.warning(
                "total_executors=%d but %s is not set; this executor takes partition 0",
                kwargs["total_executors"],
                executor_env,
            )

        return cls(**kwargs)

    def describe(self) -> Dict[str, Any]:
        """Settings summary for logs and the CLI, secrets omitted."""
        return {
            "bucket": self.bucket,
            "region": self.region,
            "storage": self.storage,
            "prefix": self.prefix,
            "checkpoint": str(self.checkpoint_path),
            "backup_to_bucket": self.backup_to_bucket,
            "backup_add_prefix": self.backup_add_prefix,
            "backup_to_dir": self.backup_to_dir,
            "delete": self.delete,
            "interval": self.interval,
            "exclude_pattern": self.exclude_pattern,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "backfill_full_range": self.backfill_full_range,
            "dry_run": self.dry_run,
            "total_executors": self.total_executors,
            "executor_id": self.executor_id,
            "hash_function": self.hash_function,
            "codec": self.codec,
        }


def load_config(
    path: Union[str, Path],
    environ: Optional[Mapping[str, str]] = None,
) -> InputConfig:
    """Load an input configuration from a YAML file.

    Args:
        path: Path to the YAML file
        environ: Environment override (defaults to os.environ)

    Returns:
        Validated InputConfig

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            document = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from None

    if not isinstance(document, dict) or "input" not in document:
        raise ConfigurationError(
            f"{path} must contain an 'input' section",
            suggestion="Put the options under a top-level 'input:' key.",
        )

    config = InputConfig.from_dict(
        document["input"] or {}, environ=environ, config_dir=path.parent
    )
    logger.debug("Loaded configuration from %s", path)
    return config
