from pathlib import Path

import pytest

from table_impact.settings import ConfigManager


def test_defaults():
    config = ConfigManager(naming_policy_file=None)

    assert config.cache_validation == "fingerprint"
    assert config.table_index_file == Path(".impact_cache") / "table_xml_mapping.json"
    assert "target" in config.excluded_dirs
    assert config.workers >= 1
    assert config.naming_policy_file is None


def test_settings_file_and_overrides(tmp_path):
    settings = tmp_path / "settings.yml"
    settings.write_text(
        "cache_dir: /var/cache/impact\n"
        "cache_validation: presence\n"
        "workers: 2\n"
        "mapper_path_markers: [src/main/resources/]\n",
        encoding="utf-8",
    )

    config = ConfigManager(settings, workers=4)

    assert config.call_site_log_file == Path("/var/cache/impact/call_references.jsonl")
    assert config.cache_validation == "presence"
    assert config.mapper_path_markers == ["src/main/resources/"]
    assert config.workers == 4


@pytest.mark.parametrize("overrides, message", [
    ({"cache_validation": "always"}, "CACHE_VALIDATION"),
    ({"executor": "fiber"}, "EXECUTOR"),
    ({"table_index_flush_every": 0}, "TABLE_INDEX_FLUSH_EVERY"),
    ({"workers": 0}, "WORKERS"),
    ({"source_dir": ""}, "Missing required configuration parameters: SOURCE_DIR"),
    ({"cache_size": 10}, "Unknown configuration parameters: CACHE_SIZE"),
])
def test_invalid_configuration(overrides, message):
    with pytest.raises(ValueError, match=message):
        ConfigManager(**overrides)


def test_missing_settings_file(tmp_path):
    with pytest.raises(ValueError, match="Settings file not found"):
        ConfigManager(tmp_path / "absent.yml")


def test_configured_naming_conventions():
    policy = ConfigManager(naming_policy_file=None, business_layer_markers=["UseCase"]).naming_policy()

    assert policy.is_business_method("com.acme.PlaceOrderUseCase.execute")
    assert not policy.is_business_method("com.acme.OrderService.load")
    assert policy.is_data_access("OrderDao")


def test_naming_policy_file_overrides_conventions(tmp_path):
    policy_file = tmp_path / "naming_policy.yml"
    policy_file.write_text(
        "business_layer:\n"
        "  markers: [Controller]\n"
        "data_access:\n"
        "  suffixes: [Mapper]\n",
        encoding="utf-8",
    )

    policy = ConfigManager(naming_policy_file=policy_file).naming_policy()

    assert policy.is_business_layer("OrderController")
    assert policy.business_layer_suffixes == ("BL", "Logic")
    assert policy.is_data_access("OrderMapper")
    assert policy.is_data_access("OrderRepository")


def test_unreadable_naming_policy_falls_back(tmp_path, caplog):
    policy_file = tmp_path / "naming_policy.yml"
    policy_file.write_text("business_layer: [unclosed\n", encoding="utf-8")

    policy = ConfigManager(naming_policy_file=policy_file).naming_policy()

    assert policy.is_business_layer("OrderService")
    assert "Failed to load naming policy file" in caplog.text


@pytest.mark.parametrize("method_id, expected", [
    ("com.acme.service.OrderService.load", True),
    ("com.acme.service.OrderService.Helper.load", True),
    ("com.acme.pricing.PriceLogic.apply", True),
    ("com.acme.service.Helper.load", False),
    ("com.acme.pricing.PriceLogic.Cache.get", False),
    ("load", False),
])
def test_business_markers_cover_enclosing_types(method_id, expected):
    policy = ConfigManager(naming_policy_file=None).naming_policy()

    assert policy.is_business_method(method_id) is expected
