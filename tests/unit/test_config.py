"""Unit tests for client configuration."""

import pytest

from northstar_rcon.config import (
    DEFAULT_PORT,
    ENV_ADDRESS,
    ENV_PASSWORD,
    ENV_TIMEOUT,
    ClientConfig,
    parse_address,
    read_password_file,
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in (ENV_ADDRESS, ENV_PASSWORD, ENV_TIMEOUT):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestParseAddress:
    """Test address parsing."""

    @pytest.mark.parametrize(
        "address,expected",
        [
            ("localhost", ("localhost", DEFAULT_PORT)),
            ("127.0.0.1:37015", ("127.0.0.1", 37015)),
            ("game.example.com:27015", ("game.example.com", 27015)),
            ("[::1]", ("::1", DEFAULT_PORT)),
            ("[::1]:8000", ("::1", 8000)),
            ("fe80::1", ("fe80::1", DEFAULT_PORT)),
            ("  10.0.0.2:1234 ", ("10.0.0.2", 1234)),
            (("example.org", 9000), ("example.org", 9000)),
        ],
    )
    def test_valid(self, address, expected):
        assert parse_address(address) == expected

    def test_custom_default_port(self):
        assert parse_address("host", default_port=1234) == ("host", 1234)

    @pytest.mark.parametrize(
        "address",
        ["", ":37015", "host:", "host:abc", "host:0", "host:70000", "[::1", "[]:1", "[::1]x"],
    )
    def test_invalid(self, address):
        with pytest.raises(ValueError):
            parse_address(address)


class TestReadPasswordFile:
    """Test password file loading."""

    def test_first_line(self, tmp_path):
        path = tmp_path / "password"
        path.write_text("secret\nignored\n")

        assert read_password_file(path) == "secret"

    def test_no_trailing_newline(self, tmp_path):
        path = tmp_path / "password"
        path.write_text("secret")

        assert read_password_file(str(path)) == "secret"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "password"
        path.write_text("")

        assert read_password_file(path) == ""


class TestClientConfig:
    """Test ClientConfig defaults and env loading."""

    def test_defaults(self):
        config = ClientConfig()

        assert config.address == ("127.0.0.1", 37015)
        assert config.password is None
        assert config.command_timeout is None
        assert config.auth_request_id == 1

    def test_from_env(self, clean_env):
        clean_env.setenv(ENV_ADDRESS, "10.1.2.3:4000")
        clean_env.setenv(ENV_PASSWORD, "hunter2")
        clean_env.setenv(ENV_TIMEOUT, "2.5")

        config = ClientConfig.from_env()

        assert config.address == ("10.1.2.3", 4000)
        assert config.password == "hunter2"
        assert config.connect_timeout == 2.5

    def test_overrides_win(self, clean_env):
        clean_env.setenv(ENV_PASSWORD, "from-env")

        config = ClientConfig.from_env(password="explicit", command_timeout=3.0)

        assert config.password == "explicit"
        assert config.command_timeout == 3.0

    def test_none_override_ignored(self, clean_env):
        clean_env.setenv(ENV_PASSWORD, "from-env")

        config = ClientConfig.from_env(password=None)

        assert config.password == "from-env"

    def test_invalid_timeout_ignored(self, clean_env, caplog):
        clean_env.setenv(ENV_TIMEOUT, "soon")

        config = ClientConfig.from_env()

        assert config.connect_timeout == 10.0
        assert ENV_TIMEOUT in caplog.text

    def test_invalid_env_address(self, clean_env):
        clean_env.setenv(ENV_ADDRESS, "host:notaport")

        with pytest.raises(ValueError):
            ClientConfig.from_env()

    def test_env_address_skipped(self, clean_env):
        clean_env.setenv(ENV_ADDRESS, "host:notaport")
        clean_env.setenv(ENV_PASSWORD, "hunter2")

        config = ClientConfig.from_env(use_env_address=False)

        assert config.address == ("127.0.0.1", 37015)
        assert config.password == "hunter2"

    def test_unknown_override(self, clean_env):
        with pytest.raises(TypeError):
            ClientConfig.from_env(colour="blue")
