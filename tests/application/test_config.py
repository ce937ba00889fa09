from pathlib import Path

from reviewloop.application.config import AppConfig, resolve_config
from reviewloop.application.id_service import generate_session_id, load_or_create_session_id


def test_defaults(mock_home):
    config = AppConfig()
    assert config.data_dir == mock_home / ".config/reviewloop"
    assert config.max_cards == 200
    assert config.retention_days == 90
    assert config.generation_cooldown_seconds == 15.0
    assert config.state_sync_delay == 1.2
    assert config.card_sync_delay == 1.8
    assert not config.has_generation_credentials


def test_toml_file_is_read(mock_home):
    cfg_dir = mock_home / ".config/reviewloop"
    cfg_dir.mkdir(parents=True)
    (cfg_dir / "config.toml").write_text('session_id = "from-file"\nmax_cards = 50\n')

    config = AppConfig()

    assert config.session_id == "from-file"
    assert config.max_cards == 50


def test_env_beats_file_and_cli_beats_env(mock_home, monkeypatch):
    (mock_home / ".reviewloop.toml").write_text('session_id = "from-file"\n')
    monkeypatch.setenv("REVIEWLOOP_SESSION_ID", "from-env")
    assert AppConfig().session_id == "from-env"
    assert resolve_config({"session_id": "from-cli"}).session_id == "from-cli"


def test_generation_credentials(mock_home, monkeypatch):
    monkeypatch.setenv("REVIEWLOOP_GENERATION_URL", "https://gen.example/cards")
    assert not AppConfig().has_generation_credentials
    monkeypatch.setenv("REVIEWLOOP_GENERATION_API_KEY", "secret")
    assert AppConfig().has_generation_credentials


def test_resolve_config_creates_stable_session_id(mock_home, tmp_path):
    data_dir = tmp_path / "data"
    first = resolve_config({"data_dir": data_dir, "seed_deck": None})
    second = resolve_config({"data_dir": data_dir})

    assert first.session_id.startswith("session_")
    assert first.session_id == second.session_id
    assert (data_dir / "session_id").exists()


def test_seed_deck_path_is_expanded(mock_home):
    config = resolve_config({"seed_deck": "~/deck.yaml", "data_dir": mock_home / "d"})
    assert config.seed_deck == (mock_home / "deck.yaml").resolve()


def test_session_id_helpers(tmp_path):
    assert generate_session_id() != generate_session_id()
    (tmp_path / "session_id").write_text("session_abc\n")
    assert load_or_create_session_id(tmp_path) == "session_abc"
    assert load_or_create_session_id(Path(tmp_path / "new")).startswith("session_")
