#!/usr/bin/env python3
"""
Unit tests for logger.py module.
"""

import logging

from systembackup.logger import STATUS_LEVEL, get_logger, setup_logger


class TestSetupLogger:
    """Tests for setup_logger function."""

    def test_setup_logger_creates_logger(self, test_settings, fresh_logger):
        logger = setup_logger(test_settings)

        assert logger.name == "systembackup"
        assert len(logger.handlers) == 2  # file and console
        assert test_settings.log_path.exists()
        assert logger.propagate is False

    def test_setup_logger_is_idempotent(self, test_settings, fresh_logger):
        assert setup_logger(test_settings) is setup_logger(test_settings)

    def test_syslog_handler_when_socket_exists(self, test_settings, fresh_logger, mocker):
        test_settings.syslog = True
        mocker.patch("systembackup.logger.os.path.exists", return_value=True)
        handler = mocker.patch("systembackup.logger.SysLogHandler")
        handler.return_value.level = STATUS_LEVEL

        logger = setup_logger(test_settings)

        handler.assert_called_once_with(address="/dev/log")
        assert len(logger.handlers) == 3

    def test_status_level_written_to_file(self, test_settings, fresh_logger):
        logger = setup_logger(test_settings)

        get_logger("orchestrator").status("Started.")
        for h in logger.handlers:
            h.flush()

        assert "[STATUS] [systembackup.orchestrator] Started." in test_settings.log_path.read_text()


class TestGetLogger:

    def test_child_of_configured_logger(self, test_settings, fresh_logger):
        setup_logger(test_settings)

        assert get_logger("mount").name == "systembackup.mount"

    def test_fallback_before_setup(self, fresh_logger):
        log = get_logger("early")

        assert log.name == "systembackup.temp.early"
        # status() is available before setup as well
        log.status("still works")
