import dataclasses

import pytest

from sources.config import KwollectConfig


def test_defaults_target_taurus_power():
    config = KwollectConfig()

    assert config.site == "lyon"
    assert config.hostname == "taurus-7"
    assert config.metrics == "wattmetre_power_watt"
    assert config.metrics_url == "https://api.grid5000.fr/stable/sites/lyon/metrics"


def test_config_is_immutable():
    config = KwollectConfig()

    with pytest.raises(dataclasses.FrozenInstanceError):
        config.site = "nancy"


@pytest.mark.parametrize("overrides", [
    {"site": ""},
    {"hostname": ""},
    {"timeout": 0},
    {"backfill": -1},
    {"max_retries": -1},
])
def test_invalid_values_rejected(overrides):
    with pytest.raises(ValueError):
        KwollectConfig(**overrides)


def test_allow_list_defaults_to_metric_filter():
    assert KwollectConfig().metric_allow_list == {"wattmetre_power_watt"}
    assert KwollectConfig(metrics="").metric_allow_list == frozenset()


def test_explicit_allow_list_wins():
    config = KwollectConfig(metrics="", allowed_metrics=("wattmetre_power_watt", "bmc_node_power_watt"))

    assert config.metric_allow_list == {"wattmetre_power_watt", "bmc_node_power_watt"}


def test_from_env_reads_kwollect_variables():
    env = {
        "KWOLLECT_SITE": "nancy",
        "KWOLLECT_HOSTNAME": " gros-12 ",
        "KWOLLECT_METRICS": "",
        "KWOLLECT_LOGIN": "alice",
        "KWOLLECT_PASSWORD": "s3cret",
        "KWOLLECT_ALLOWED_METRICS": "wattmetre_power_watt, bmc_node_power_watt,",
        "KWOLLECT_TIMEOUT": "2.5",
        "KWOLLECT_BACKFILL": "300",
        "KWOLLECT_MAX_RETRIES": "2",
    }

    config = KwollectConfig.from_env(env)

    assert config.site == "nancy"
    assert config.hostname == "gros-12"
    assert config.metrics == ""
    assert config.login == "alice"
    assert config.allowed_metrics == ("wattmetre_power_watt", "bmc_node_power_watt")
    assert config.timeout == 2.5
    assert config.backfill == 300.0
    assert config.max_retries == 2
    assert config.overlap == 0.0


def test_from_env_uses_process_environment(monkeypatch):
    monkeypatch.setenv("KWOLLECT_HOSTNAME", "taurus-3")

    assert KwollectConfig.from_env().hostname == "taurus-3"


@pytest.mark.parametrize("name, value", [
    ("KWOLLECT_TIMEOUT", "soon"),
    ("KWOLLECT_MAX_RETRIES", "1.5"),
    ("KWOLLECT_SITE", "  "),
])
def test_from_env_invalid_values(name, value):
    with pytest.raises(ValueError):
        KwollectConfig.from_env({name: value})
