"""
Unit tests for infrastructure/config.py - TOML-backed ResolverConfig.
"""
import pytest

from infrastructure.config import (
    DEFAULT_CONFIG_PATH,
    ConfigError,
    ResolverConfig,
    SystemVariableConfig,
    config_from_dict,
    get_config,
    load_config,
    load_toml_config,
    reset_config,
    set_config,
)


# =============================================================================
# DEFAULTS AND VALIDATION
# =============================================================================

def test_defaults():
    config = ResolverConfig()
    assert [v.name for v in config.system_variables] == ["SYS_USER_ID"]
    assert config.follow_exception_edges is True
    assert config.exception_flow_modes == ("EXECUTE_EXCEPTION_FLOW",)
    assert config.template_fields_for("LLM") is None


def test_system_variables_need_prefix():
    with pytest.raises(ConfigError):
        ResolverConfig(system_variables=(SystemVariableConfig(name="USER_ID"),))


def test_system_variables_cannot_be_empty():
    with pytest.raises(ConfigError):
        ResolverConfig(system_variables=())


def test_config_from_dict():
    config = config_from_dict({
        "resolver": {
            "follow_exception_edges": False,
            "system_variables": [{"name": "SYS_CHAT_ID", "data_type": "Integer"}],
            "template_fields": {"Code": ["content"]},
        }
    })
    assert config.follow_exception_edges is False
    assert config.system_variables[0].data_type == "Integer"
    assert config.template_fields_for("Code") == ("content",)


def test_config_from_dict_wrong_type():
    with pytest.raises(ConfigError):
        config_from_dict({"resolver": {"follow_exception_edges": "sometimes"}})


def test_empty_document_gives_defaults():
    assert config_from_dict({}) == ResolverConfig()


# =============================================================================
# LOADING
# =============================================================================

def test_default_file_loads():
    assert DEFAULT_CONFIG_PATH.exists()
    config = load_config(DEFAULT_CONFIG_PATH)
    assert config.system_variables[0].name == "SYS_USER_ID"


def test_custom_file(tmp_path):
    path = tmp_path / "custom.toml"
    path.write_text(
        '[resolver]\n'
        'exception_flow_modes = ["EXECUTE_EXCEPTION_FLOW", "SPECIFIC_CONTENT"]\n'
    )
    config = load_config(path)
    assert config.exception_flow_modes == ("EXECUTE_EXCEPTION_FLOW", "SPECIFIC_CONTENT")


def test_env_var_selects_file(tmp_path, monkeypatch):
    path = tmp_path / "env.toml"
    path.write_text("[resolver]\nfollow_exception_edges = false\n")
    monkeypatch.setenv("VARSCOPE_CONFIG", str(path))
    assert load_toml_config() == {"resolver": {"follow_exception_edges": False}}


def test_missing_file_warns_and_falls_back(tmp_path):
    with pytest.warns(UserWarning):
        assert load_toml_config(tmp_path / "nope.toml") == {}


def test_invalid_values_in_file(tmp_path):
    path = tmp_path / "bad.toml"
    path.write_text('[[resolver.system_variables]]\nname = "USER"\n')
    with pytest.raises(ConfigError):
        load_config(path)


# =============================================================================
# PROCESS DEFAULT
# =============================================================================

def test_set_and_reset_config(tmp_path, monkeypatch):
    custom = ResolverConfig(follow_exception_edges=False)
    set_config(custom)
    assert get_config() is custom

    path = tmp_path / "fresh.toml"
    path.write_text("[resolver]\n")
    monkeypatch.setenv("VARSCOPE_CONFIG", str(path))
    reset_config()
    assert get_config() == ResolverConfig()
