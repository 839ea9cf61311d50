import pytest

from config import Config, ConfigurationLoadError


async def load(tmp_path, text: str) -> Config:
    path = tmp_path / "config.toml"
    path.write_text(text)
    config = Config(path)
    await config.initialize()
    return config


async def test_defaults_fill_missing_tables(tmp_path):
    config = await load(tmp_path, '[server]\nport = 3000\n')

    assert config.config["server"] == {"host": "0.0.0.0", "port": 3000}
    assert config.config["tower"] == {"layers": 18, "blocks_per_layer": 3}
    settings = config.collapse_settings()
    assert settings.structural_probability == 0.4
    assert settings.free_threshold == 8
    assert settings.hazard_slope == 0.04
    assert settings.layer_danger_bonus == 0.15
    assert config.announce_delay == 0.5


async def test_overrides(tmp_path):
    config = await load(tmp_path, """
[server]
host = "127.0.0.1"
port = 8765

[tower]
layers = 12

[collapse]
structural_probability = 1
announce_delay_ms = 0
""")

    assert config.config["tower"]["layers"] == 12
    assert config.collapse_settings().structural_probability == 1.0
    assert config.announce_delay == 0


async def test_example_config_is_valid():
    from pathlib import Path

    config = Config(Path(__file__).parent.parent / ".example" / "config.toml")
    await config.initialize()

    assert config.config["server"]["port"] == 3000


async def test_missing_file(tmp_path):
    with pytest.raises(ConfigurationLoadError):
        await Config(tmp_path / "nope.toml").initialize()


@pytest.mark.parametrize("text", [
    "[server\nport = 1",
    "[server]\nport = 70000\n",
    "[server]\nhost = \"x\"\n",
    "[server]\nport = 1\n[collapse]\nhazard_slope = 2.5\n",
])
async def test_invalid_configuration(tmp_path, text):
    with pytest.raises(ConfigurationLoadError):
        await load(tmp_path, text)
