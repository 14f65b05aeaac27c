from __future__ import annotations

from pathlib import Path

import pytest

from assistant_runtime.infrastructure.config.settings import load_settings


def test_missing_file_gives_defaults(tmp_path: Path):
    settings = load_settings(str(tmp_path / "absent.yaml"), environ={})

    assert settings.session.timeout_hours == 24
    assert settings.session.max_messages == 50
    assert settings.memory.max_per_session == 100
    assert settings.services.memory_url is None


def test_yaml_values_and_env_overrides(tmp_path: Path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "session:\n  max_messages: 20\nservices:\n  memory_url: http://memory:3001\n",
        encoding="utf-8",
    )

    settings = load_settings(str(path), environ={
        "ASSISTANT_RUNTIME__SESSION__TIMEOUT_HOURS": "12",
        "ASSISTANT_RUNTIME__LOGGING__FORMAT": "console",
        "UNRELATED": "ignored",
    })

    assert settings.session.max_messages == 20
    assert settings.session.timeout_hours == 12
    assert settings.logging.format == "console"
    assert settings.services.memory_url == "http://memory:3001"


def test_config_path_from_environment(tmp_path: Path):
    path = tmp_path / "alt.yaml"
    path.write_text("model:\n  temperature: 0.9\n", encoding="utf-8")

    settings = load_settings(environ={"ASSISTANT_RUNTIME_CONFIG": str(path)})

    assert settings.model.temperature == 0.9


@pytest.mark.parametrize("content", ["session: [unclosed", "- just\n- a list\n"])
def test_malformed_config_raises(tmp_path: Path, content: str):
    path = tmp_path / "bad.yaml"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(RuntimeError):
        load_settings(str(path), environ={})


def test_shipped_default_config_loads():
    root = Path(__file__).resolve().parent.parent
    settings = load_settings(str(root / "config" / "default.yaml"), environ={})

    assert settings.services.assistant_url.startswith("http")
