"""
Configuration for bucket outputs.

Settings arrive as plugin-style string key/value pairs, either handed over
by a host process or read from a YAML file:

    outputs:
      - Bucket: my-logs
        OutputID: app
        ObjectNameTemplate: "{{ tag }}/{{ year }}/{{ month }}/{{ day }}/{{ timestamp }}"
        BufferSizeKiB: 5000
        BufferTimeoutSeconds: 300
        Compression: gzip

Keys are matched case-insensitively. Blank values take the default.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from bucket_sink.compression import Compression
from bucket_sink.errors import ConfigurationError
from bucket_sink.naming import DEFAULT_OBJECT_NAME_TEMPLATE, ObjectNameTemplate

logger = logging.getLogger(__name__)

STORAGE_TYPES = ("s3", "local")


@dataclass
class OutputConfig:
    """Configuration for one output instance."""
    bucket: str
    output_id: str
    object_name_template: str = DEFAULT_OBJECT_NAME_TEMPLATE
    buffer_size_kib: int = 5000
    buffer_timeout_seconds: float = 300
    compression: Compression = Compression.NONE

    # Storage backend
    storage_type: str = "s3"  # "s3" or "local"
    region: Optional[str] = None
    endpoint_url: Optional[str] = None
    local_path: str = "./objects"

    template: ObjectNameTemplate = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if not self.bucket:
            raise ConfigurationError("Bucket is required")
        if not self.output_id:
            raise ConfigurationError("OutputID is required")
        if self.buffer_size_kib <= 0:
            raise ConfigurationError(f"BufferSizeKiB must be positive, got {self.buffer_size_kib}")
        if self.buffer_timeout_seconds <= 0:
            raise ConfigurationError(
                f"BufferTimeoutSeconds must be positive, got {self.buffer_timeout_seconds}"
            )
        self.template = ObjectNameTemplate(self.object_name_template)

    @property
    def buffer_size_bytes(self) -> int:
        return self.buffer_size_kib * 1024

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> "OutputConfig":
        """
        Build a config from plugin-style settings.

        Raises:
            ConfigurationError: If a required key is missing or the name
                template is invalid
        """
        values = {str(k).lower(): ("" if v is None else str(v).strip()) for k, v in settings.items()}

        bucket = _required(values, "Bucket")
        output_id = _required(values, "OutputID")

        config_kwargs: Dict[str, Any] = {
            "bucket": bucket,
            "output_id": output_id,
            "object_name_template": values.get("objectnametemplate") or DEFAULT_OBJECT_NAME_TEMPLATE,
        }

        size = _int_or_default(values, "BufferSizeKiB")
        if size is not None:
            config_kwargs["buffer_size_kib"] = size

        timeout = _int_or_default(values, "BufferTimeoutSeconds")
        if timeout is not None:
            config_kwargs["buffer_timeout_seconds"] = timeout

        raw_compression = values.get("compression", "")
        if raw_compression:
            compression = Compression.parse(raw_compression)
            if compression is None:
                logger.warning(f"'Compression {raw_compression}' should be 'gzip' or 'none'; using default")
            else:
                config_kwargs["compression"] = compression

        raw_storage = values.get("storagetype", "").lower()
        if raw_storage:
            if raw_storage in STORAGE_TYPES:
                config_kwargs["storage_type"] = raw_storage
            else:
                logger.warning(f"'StorageType {raw_storage}' should be one of {STORAGE_TYPES}; using default")

        if values.get("region"):
            config_kwargs["region"] = values["region"]
        if values.get("endpointurl"):
            config_kwargs["endpoint_url"] = values["endpointurl"]
        if values.get("localpath"):
            config_kwargs["local_path"] = values["localpath"]

        return cls(**config_kwargs)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> List["OutputConfig"]:
        """
        Load every output defined in a YAML file.

        Accepts either an `outputs:` list or a single `output:` mapping.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return [cls.from_settings(entry) for entry in settings_from_document(data)]


def settings_from_document(data: Mapping[str, Any]) -> List[Mapping[str, Any]]:
    """Extract the per-output settings mappings from a parsed YAML document."""
    if not isinstance(data, Mapping):
        raise ConfigurationError("Config file must contain a mapping")
    if "outputs" in data:
        entries = data["outputs"] or []
    elif "output" in data:
        entries = [data["output"]]
    else:
        raise ConfigurationError("Config file must define 'outputs' or 'output'")
    if not isinstance(entries, list) or not all(isinstance(e, Mapping) for e in entries):
        raise ConfigurationError("'outputs' must be a list of mappings")
    return entries


def _required(values: Dict[str, str], key: str) -> str:
    value = values.get(key.lower(), "")
    if not value:
        raise ConfigurationError(
            f"required field {key} is missing from 1 or more output blocks. "
            f"Check your config and add this field."
        )
    return value


def _int_or_default(values: Dict[str, str], key: str) -> Optional[int]:
    """Parse an integer setting, or return None to accept the default."""
    raw = values.get(key.lower(), "")
    if raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"{key}={raw!r}: option value should be an int, using default")
        return None


def default_config_yaml() -> str:
    """Contents written by `bucket-sink --init`."""
    return """# bucket-sink configuration
outputs:
  - OutputID: default
    Bucket: my-bucket
    ObjectNameTemplate: "{{ tag }}/{{ year }}/{{ month }}/{{ day }}/{{ timestamp }}-{{ uuid }}"
    BufferSizeKiB: 5000
    BufferTimeoutSeconds: 300
    Compression: gzip
    StorageType: s3
    # Region: us-east-1
    # EndpointURL: http://localhost:9000
    # LocalPath: ./objects
"""


__all__ = ["OutputConfig", "STORAGE_TYPES", "default_config_yaml", "settings_from_document"]
