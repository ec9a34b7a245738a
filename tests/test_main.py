"""Tests for the server entry point."""

from unittest.mock import patch

import main
from config.settings import AppConfig


class TestMain:
    """Test cases for main.main()."""

    def test_runs_uvicorn_with_arguments(self):
        config = AppConfig(load_env_file=False)

        with patch("main.get_config", return_value=config), \
                patch("main.configure_logging"), \
                patch("main.uvicorn.run") as run:
            code = main.main(["--host", "127.0.0.1", "--port", "9100", "--log-level", "DEBUG"])

        assert code == 0
        run.assert_called_once_with("api_server:app", host="127.0.0.1", port=9100, reload=False,
                                    log_level="debug")

    def test_invalid_configuration_exits_early(self):
        config = AppConfig(load_env_file=False)
        config.polling.min_poll_interval = 0

        with patch("main.get_config", return_value=config), \
                patch("main.configure_logging"), \
                patch("main.uvicorn.run") as run:
            code = main.main([])

        assert code == 1
        run.assert_not_called()
