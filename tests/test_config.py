"""Tests for bucket_sink.config module."""

import logging

import pytest

from bucket_sink.compression import Compression
from bucket_sink.config import OutputConfig, default_config_yaml
from bucket_sink.errors import ConfigurationError, TemplateError
from bucket_sink.naming import DEFAULT_OBJECT_NAME_TEMPLATE


@pytest.fixture
def settings():
    return {
        "BufferSizeKiB": "19",
        "BufferTimeoutSeconds": "300",
        "Compression": "",
        "Bucket": "bucketymcbucketface.example.com",
        "OutputID": "1",
        "ObjectNameTemplate": "",
    }


class TestFromSettings:
    """Tests for OutputConfig.from_settings."""

    def test_parses_settings(self, settings):
        config = OutputConfig.from_settings(settings)

        assert config == OutputConfig(
            bucket="bucketymcbucketface.example.com",
            output_id="1",
            object_name_template=DEFAULT_OBJECT_NAME_TEMPLATE,
            buffer_size_kib=19,
            buffer_timeout_seconds=300,
            compression=Compression.NONE,
        )
        assert config.buffer_size_bytes == 19 * 1024

    def test_defaults(self):
        config = OutputConfig.from_settings({"Bucket": "b", "OutputID": "o"})

        assert config.buffer_size_kib == 5000
        assert config.buffer_timeout_seconds == 300
        assert config.compression is Compression.NONE
        assert config.object_name_template == DEFAULT_OBJECT_NAME_TEMPLATE
        assert config.storage_type == "s3"
        assert config.region is None

    def test_keys_are_case_insensitive(self):
        config = OutputConfig.from_settings({
            "bucket": "b",
            "OUTPUTID": "o",
            "compression": "GZIP",
            "buffersizekib": "7",
        })

        assert config.compression is Compression.GZIP
        assert config.buffer_size_kib == 7

    @pytest.mark.parametrize("missing", ["Bucket", "OutputID"])
    def test_required_keys(self, settings, missing):
        settings[missing] = ""

        with pytest.raises(ConfigurationError, match=f"required field {missing}"):
            OutputConfig.from_settings(settings)

    def test_unparseable_int_uses_default(self, settings, caplog):
        settings["BufferSizeKiB"] = "nineteen"

        with caplog.at_level(logging.WARNING):
            config = OutputConfig.from_settings(settings)

        assert config.buffer_size_kib == 5000
        assert "should be an int" in caplog.text

    def test_unknown_compression_uses_default(self, settings, caplog):
        settings["Compression"] = "zstd"

        with caplog.at_level(logging.WARNING):
            config = OutputConfig.from_settings(settings)

        assert config.compression is Compression.NONE
        assert "'Compression zstd' should be 'gzip' or 'none'" in caplog.text

    def test_unknown_storage_type_uses_default(self, settings, caplog):
        settings["StorageType"] = "gcs"

        with caplog.at_level(logging.WARNING):
            config = OutputConfig.from_settings(settings)

        assert config.storage_type == "s3"

    def test_local_storage_settings(self, settings):
        settings.update({"StorageType": "local", "LocalPath": "/tmp/objects"})
        config = OutputConfig.from_settings(settings)

        assert config.storage_type == "local"
        assert config.local_path == "/tmp/objects"

    def test_invalid_template_is_fatal(self, settings):
        settings["ObjectNameTemplate"] = "{{ .Hostname }}"

        with pytest.raises(TemplateError):
            OutputConfig.from_settings(settings)

    def test_template_is_compiled(self, settings):
        settings["ObjectNameTemplate"] = "{{ tag }}/{{ uuid }}"
        config = OutputConfig.from_settings(settings)

        assert config.template.uses_uuid

    @pytest.mark.parametrize("key", ["BufferSizeKiB", "BufferTimeoutSeconds"])
    def test_non_positive_thresholds_rejected(self, settings, key):
        settings[key] = "0"

        with pytest.raises(ConfigurationError):
            OutputConfig.from_settings(settings)


class TestFromYaml:
    """Tests for OutputConfig.from_yaml."""

    def test_outputs_list(self, temp_dir):
        path = temp_dir / "sink.yaml"
        path.write_text(
            "outputs:\n"
            "  - Bucket: one\n"
            "    OutputID: a\n"
            "    BufferSizeKiB: 10\n"
            "  - Bucket: two\n"
            "    OutputID: b\n"
            "    Compression: gzip\n"
        )

        configs = OutputConfig.from_yaml(path)

        assert [c.output_id for c in configs] == ["a", "b"]
        assert configs[0].buffer_size_kib == 10
        assert configs[1].compression is Compression.GZIP

    def test_single_output(self, temp_dir):
        path = temp_dir / "sink.yaml"
        path.write_text("output:\n  Bucket: one\n  OutputID: a\n")

        assert len(OutputConfig.from_yaml(path)) == 1

    def test_missing_file(self, temp_dir):
        with pytest.raises(FileNotFoundError):
            OutputConfig.from_yaml(temp_dir / "nope.yaml")

    def test_no_outputs_section(self, temp_dir):
        path = temp_dir / "sink.yaml"
        path.write_text("something_else: true\n")

        with pytest.raises(ConfigurationError):
            OutputConfig.from_yaml(path)

    def test_default_config_is_loadable(self, temp_dir):
        path = temp_dir / "sink.yaml"
        path.write_text(default_config_yaml())

        (config,) = OutputConfig.from_yaml(path)

        assert config.bucket == "my-bucket"
        assert config.compression is Compression.GZIP
        assert config.template.uses_uuid
