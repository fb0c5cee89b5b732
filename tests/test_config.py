"""
Tests for configuration loading and validation

Validates request-body layering, YAML parsing, virtual address definitions
and error messages for invalid values.
"""

import re

import pytest

from oscbridge.config import (
    ListenerConfig,
    ServerConfig,
    build_server_config,
    default_virtual_addresses,
    listener_config_from_mapping,
    load_config,
    parse_virtual_addresses,
)


class TestListenerConfig:
    """Test listener settings and their client representation."""

    def test_defaults(self):
        config = ListenerConfig()

        assert config.local_address == "0.0.0.0"
        assert config.local_port == 9005
        assert config.update_rate == 1.0
        assert config.record_data is False
        assert config.reducer == "average"

    def test_to_dict_camel_case(self):
        config = ListenerConfig(virtual_addresses=default_virtual_addresses()[:1])

        assert config.to_dict() == {
            "localAddress": "0.0.0.0",
            "localPort": 9005,
            "updateRate": 1.0,
            "recordData": False,
            "recordFileName": None,
            "reducer": "average",
            "virtualAddresses": [{
                "address": "/muse/alpha_average",
                "sources": ["/muse/elements/alpha_absolute", "/muse/elements/alpha_absolute2"],
                "function": "nonZeroAverage",
            }],
        }

    def test_with_record_file_generates_name(self):
        config = ListenerConfig(record_data=True).with_record_file()

        assert re.match(r"^recordings[/\\]osc_data_\d{8}_\d{6}\.csv$", config.record_file_name)

    def test_with_record_file_keeps_explicit_name(self):
        config = ListenerConfig(record_data=True, record_file_name="out.csv").with_record_file()
        assert config.record_file_name == "out.csv"

    def test_with_record_file_not_recording(self):
        config = ListenerConfig()
        assert config.with_record_file() is config


class TestListenerConfigFromMapping:
    """Test layering request bodies over defaults."""

    def test_none_returns_defaults(self):
        defaults = ListenerConfig(local_port=9100)
        assert listener_config_from_mapping(None, defaults) is defaults

    def test_camel_case_request(self):
        config = listener_config_from_mapping({
            "localAddress": "127.0.0.1",
            "localPort": 9010,
            "updateRate": 30,
            "recordData": True,
        })

        assert config.local_address == "127.0.0.1"
        assert config.local_port == 9010
        assert config.update_rate == 30.0
        assert config.record_data is True

    def test_snake_case_keys(self):
        config = listener_config_from_mapping({"local_port": 9011, "reducer": "last"})

        assert config.local_port == 9011
        assert config.reducer == "last"

    def test_missing_and_null_fields_keep_defaults(self):
        defaults = ListenerConfig(local_port=9100, update_rate=5)
        config = listener_config_from_mapping({"localPort": None}, defaults)

        assert config.local_port == 9100
        assert config.update_rate == 5

    def test_string_values_converted(self):
        config = listener_config_from_mapping({"localPort": "9012", "updateRate": "2.5", "recordData": "false"})

        assert config.local_port == 9012
        assert config.update_rate == 2.5
        assert config.record_data is False

    def test_virtual_addresses_come_from_defaults(self):
        defaults = ListenerConfig(virtual_addresses=default_virtual_addresses())
        config = listener_config_from_mapping({"virtualAddresses": []}, defaults)

        assert config.virtual_addresses == defaults.virtual_addresses

    @pytest.mark.parametrize("payload,message", [
        ({"localPort": 0}, "localPort"),
        ({"localPort": 70000}, "localPort"),
        ({"localPort": "abc"}, "localPort"),
        ({"localPort": True}, "localPort"),
        ({"updateRate": 0}, "updateRate"),
        ({"updateRate": "fast"}, "updateRate"),
        ({"recordData": "maybe"}, "recordData"),
        ({"reducer": "median"}, "reducer"),
        ({"localAddress": ""}, "localAddress"),
    ])
    def test_invalid_values(self, payload, message):
        with pytest.raises(ValueError, match=message):
            listener_config_from_mapping(payload)

    def test_non_mapping(self):
        with pytest.raises(ValueError, match="must be an object"):
            listener_config_from_mapping([1, 2])


class TestVirtualAddresses:
    """Test virtual address parsing."""

    def test_defaults_cover_wave_bands(self):
        addresses = [config.virtual_address for config in default_virtual_addresses()]

        assert addresses == [
            "/muse/alpha_average",
            "/muse/beta_average",
            "/muse/gamma_average",
            "/muse/delta_average",
            "/muse/theta_average",
        ]

    def test_parse(self):
        configs = parse_virtual_addresses([
            {"address": "/v/sum", "sources": ["/a", "/b"], "function": "sum"},
            {"address": "/v/avg", "sources": ["/a"]},
        ])

        assert [c.virtual_address for c in configs] == ["/v/sum", "/v/avg"]
        assert configs[0].function_name == "sum"
        assert configs[1].function_name == "average"

    def test_parse_none(self):
        assert parse_virtual_addresses(None) == ()

    @pytest.mark.parametrize("entries,message", [
        ({"address": "/v"}, "must be a list"),
        (["/v"], "must be a mapping"),
        ([{"address": "v", "sources": ["/a"]}], "Invalid OSC address"),
        ([{"address": "/v", "sources": []}], "non-empty 'sources'"),
        ([{"address": "/v", "sources": ["a b"]}], "Invalid OSC address"),
        ([{"address": "/v", "sources": ["/a"], "function": "median"}], "Unknown aggregate function"),
        ([{"address": "/v", "sources": ["/a"]}, {"address": "/v", "sources": ["/b"]}], "Duplicate"),
    ])
    def test_parse_invalid(self, entries, message):
        with pytest.raises(ValueError, match=message):
            parse_virtual_addresses(entries)


class TestServerConfig:
    """Test YAML document validation and loading."""

    def test_empty_document_gives_defaults(self):
        config = build_server_config(None)

        assert config.host == "0.0.0.0"
        assert config.port == 3001
        assert config.session_ttl_s == 300
        assert config.listener.local_port == 9005
        assert len(config.listener.virtual_addresses) == 5

    def test_sections(self):
        config = build_server_config({
            "server": {"port": 3100, "session_ttl_s": 30, "record_batch_size": 10},
            "listener": {"local_port": 9100, "reducer": "last"},
            "virtual_addresses": [{"address": "/v", "sources": ["/a"], "function": "max"}],
        })

        assert config.port == 3100
        assert config.session_ttl_s == 30
        assert config.record_batch_size == 10
        assert config.listener.local_port == 9100
        assert config.listener.reducer == "last"
        assert [v.virtual_address for v in config.listener.virtual_addresses] == ["/v"]

    def test_empty_virtual_address_list_disables_defaults(self):
        config = build_server_config({"virtual_addresses": []})
        assert config.listener.virtual_addresses == ()

    @pytest.mark.parametrize("server,message", [
        ({"port": 0}, "server.port"),
        ({"session_ttl_s": 0}, "session_ttl_s"),
        ({"cleanup_interval_s": -1}, "cleanup_interval_s"),
        ({"record_batch_size": 0}, "record_batch_size"),
        ({"record_flush_interval_s": 0}, "record_flush_interval_s"),
    ])
    def test_invalid_server_section(self, server, message):
        with pytest.raises(ValueError, match=message):
            build_server_config({"server": server})

    def test_invalid_root(self):
        with pytest.raises(ValueError, match="root must be a mapping"):
            build_server_config(["server"])

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "server:\n"
            "  port: 3200\n"
            "listener:\n"
            "  local_port: 9200\n"
            "  record_data: true\n"
            "virtual_addresses:\n"
            "  - address: /muse/alpha_average\n"
            "    sources: [/muse/elements/alpha_absolute]\n"
            "    function: nonZeroAverage\n"
        )

        config = load_config(str(path))

        assert isinstance(config, ServerConfig)
        assert config.port == 3200
        assert config.listener.local_port == 9200
        assert config.listener.record_data is True
        assert config.listener.virtual_addresses[0].function_name == "nonZeroAverage"

    def test_load_default(self):
        assert load_config(None) == build_server_config({})

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.example.yaml"):
            load_config(str(tmp_path / "missing.yaml"))
