# -*- coding: utf-8 -*-
# © Copyright EnterpriseDB UK Limited 2013-2025
#
# This file is part of pgrman.
#
# pgrman is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# pgrman is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with pgrman.  If not, see <http://www.gnu.org/licenses/>.

import json
import logging

import mock
import pytest

from pgrman import output
from pgrman.wal_continuity import WalSearchResult


def teardown_module(module):
    """
    Set the output API to a functional state, after testing it
    """
    output.set_output_writer(output.DEFAULT_WRITER)


def _restore_results(check=True):
    return {
        "check": check,
        "current_timeline": 0,
        "backup_timeline": 1,
        "target_timeline": 1,
        "base_backup": "20240101T100000",
        "incremental_backups": ["20240101T110000"],
        "archive_backups": ["20240101T110000", "20240101T100000"],
        "wal_search": [
            WalSearchResult(
                "/backup/20240101T100000/arclog",
                "000000010000000000000001",
                "000000010000000000000003",
                3,
            ),
            WalSearchResult(
                "/srv/pgsql/arclog", "000000010000000000000004", None, 1
            ),
            WalSearchResult("/srv/pgsql/data/pg_xlog", None, None, 0),
        ],
    }


# noinspection PyMethodMayBeStatic
class TestOutputAPI(object):
    @staticmethod
    def _mock_writer():
        # install a fresh mocked output writer
        writer = mock.Mock()
        output.set_output_writer(writer)
        # reset the error status
        output.error_occurred = False
        output.error_exit_code = 1
        return writer

    def test_debug(self, caplog):
        caplog.set_level(logging.DEBUG)
        writer = self._mock_writer()
        msg = "test message"
        output.debug(msg)

        # logging test
        for record in caplog.records:
            assert record.levelname == "DEBUG"
            assert record.name == __name__
        assert msg in caplog.text

        # writer test
        writer.debug.assert_called_once_with(msg)
        assert not writer.error_occurred.called
        assert not output.error_occurred

    def test_info_with_args(self, caplog):
        caplog.set_level(logging.INFO)
        writer = self._mock_writer()
        output.info("restoring %s from %s", "database", "20240101T100000")

        writer.info.assert_called_once_with(
            "restoring %s from %s", "database", "20240101T100000"
        )
        assert "restoring database from 20240101T100000" in caplog.text

    def test_info_without_logging(self, caplog):
        writer = self._mock_writer()
        output.info("not logged", log=False)

        writer.info.assert_called_once_with("not logged")
        assert "not logged" not in caplog.text

    def test_warning(self, caplog):
        writer = self._mock_writer()
        output.warning("check %s", "this")

        writer.warning.assert_called_once_with("check %s", "this")
        assert not output.error_occurred
        assert "check this" in caplog.text

    def test_error(self, caplog):
        writer = self._mock_writer()
        output.error("failure %s", "here", exit_code=25)

        writer.error_occurred.assert_called_once_with()
        writer.error.assert_called_once_with("failure %s", "here")
        assert output.error_occurred
        assert output.error_exit_code == 25
        assert "failure here" in caplog.text

    def test_error_ignore(self):
        writer = self._mock_writer()
        output.error("ignored", ignore=True)

        assert not writer.error_occurred.called
        assert not output.error_occurred

    def test_exception(self, caplog):
        writer = self._mock_writer()
        try:
            raise ValueError("boom")
        except ValueError:
            output.exception("unexpected")

        writer.exception.assert_called_once_with("unexpected")
        assert output.error_occurred
        assert "Traceback" in caplog.text

    def test_exception_raise(self):
        self._mock_writer()
        with pytest.raises(RuntimeError):
            output.exception("failed", raise_exception=RuntimeError)

    def test_unexpected_keyword(self):
        self._mock_writer()
        with pytest.raises(TypeError):
            output.info("message", colour="red")

    def test_result(self):
        writer = self._mock_writer()
        results = _restore_results()
        output.result("restore", results)
        writer.result_restore.assert_called_once_with(results)

    def test_result_unsupported(self):
        writer = self._mock_writer()
        writer.result_restore = None
        with pytest.raises(SystemExit) as excinfo:
            output.result("restore", {})
        assert excinfo.value.code == 1
        assert writer.exception.called

    def test_close_and_exit(self):
        writer = self._mock_writer()
        with pytest.raises(SystemExit) as excinfo:
            output.close_and_exit()
        writer.close.assert_called_once_with()
        assert excinfo.value.code == 0

    def test_close_and_exit_with_error(self):
        writer = self._mock_writer()
        output.error("no backup", exit_code=25)
        with pytest.raises(SystemExit) as excinfo:
            output.close_and_exit()
        writer.close.assert_called_once_with()
        assert excinfo.value.code == 25

    def test_close_and_exit_forced(self):
        self._mock_writer()
        with pytest.raises(SystemExit) as excinfo:
            output.close_and_exit(3)
        assert excinfo.value.code == 3

    def test_set_output_writer(self):
        old_writer = self._mock_writer()
        output.set_output_writer("json", quiet=True)

        old_writer.close.assert_called_once_with()
        assert isinstance(output._writer, output.JsonOutputWriter)


# noinspection PyMethodMayBeStatic
class TestConsoleWriter(object):
    def test_debug(self, capsys):
        writer = output.ConsoleOutputWriter(debug=True)
        writer.debug("message %s", "one")
        (out, err) = capsys.readouterr()
        assert out == ""
        assert err == "DEBUG: message one\n"

    def test_debug_disabled(self, capsys):
        writer = output.ConsoleOutputWriter()
        writer.debug("message")
        (out, err) = capsys.readouterr()
        assert out == ""
        assert err == ""

    def test_info(self, capsys):
        writer = output.ConsoleOutputWriter()
        writer.info("message %d", 1)
        (out, err) = capsys.readouterr()
        assert out == "message 1\n"
        assert err == ""

    def test_info_quiet(self, capsys):
        writer = output.ConsoleOutputWriter(quiet=True)
        writer.info("message")
        (out, err) = capsys.readouterr()
        assert out == ""

    def test_warning_and_error(self, capsys):
        writer = output.ConsoleOutputWriter()
        writer.warning("careful")
        writer.error("failed")
        (out, err) = capsys.readouterr()
        assert out == ""
        assert err == "WARNING: careful\nERROR: failed\n"

    def test_colors(self, capsys, monkeypatch):
        monkeypatch.setattr(output, "ansi_colors_enabled", True)
        writer = output.ConsoleOutputWriter()
        writer.error("failed")
        (out, err) = capsys.readouterr()
        assert err == "\033[31mERROR: failed\033[0m\n"

    def test_result_restore(self, capsys):
        writer = output.ConsoleOutputWriter()
        writer.result_restore(_restore_results(check=False))
        (out, err) = capsys.readouterr()
        assert out == (
            "restore complete. Recovery starts automatically "
            "when the PostgreSQL server is started.\n"
        )

    def test_result_restore_check(self, capsys):
        writer = output.ConsoleOutputWriter()
        writer.result_restore(_restore_results())
        (out, err) = capsys.readouterr()
        lines = out.splitlines()
        assert "  base backup:         20240101T100000" in lines
        assert "  incremental backup:  20240101T110000" in lines
        assert "  archived WAL from:   20240101T100000" in lines
        assert "  target timeline:     1" in lines
        assert (
            "  WAL in /backup/20240101T100000/arclog: "
            "000000010000000000000001 - 000000010000000000000003"
        ) in lines
        assert "  WAL in /srv/pgsql/arclog: 000000010000000000000004" in lines
        assert "  WAL in /srv/pgsql/data/pg_xlog: none" in lines
        assert err == ""


# noinspection PyMethodMayBeStatic
class TestJsonWriter(object):
    def test_messages(self, capsys):
        writer = output.JsonOutputWriter()
        writer.info("message %s", "one")
        writer.warning("careful")
        writer.debug("hidden")
        writer.close()
        (out, err) = capsys.readouterr()
        assert json.loads(out) == {
            "_INFO": ["message one"],
            "_WARNING": ["careful"],
        }
        assert err == ""

    def test_empty_close(self, capsys):
        writer = output.JsonOutputWriter()
        writer.close()
        (out, err) = capsys.readouterr()
        assert out == ""

    def test_result_restore(self, capsys):
        writer = output.JsonOutputWriter()
        writer.result_restore(_restore_results())
        writer.close()
        (out, err) = capsys.readouterr()
        data = json.loads(out)["restore"]
        assert data["base_backup"] == "20240101T100000"
        assert data["archive_backups"] == ["20240101T110000", "20240101T100000"]
        assert data["wal_search"][0] == {
            "directory": "/backup/20240101T100000/arclog",
            "first": "000000010000000000000001",
            "last": "000000010000000000000003",
            "count": 3,
        }
        assert data["wal_search"][2]["count"] == 0
