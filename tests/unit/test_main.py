"""Unit tests for the command-line entry point."""

import sys
from datetime import datetime
from unittest.mock import patch

import pytest

from prescribe import main as main_module
from prescribe.models.session import RecordingSession
from prescribe.storage.session_store import SessionStore


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "prescribe.yaml"
    path.write_text(
        "storage:\n  data_directory: data\n"
        "logging:\n  file_path: logs/prescribe.log\n  console_output: false\n",
        encoding="utf-8")
    return str(path)


def _run_main(*args):
    with patch.object(sys, 'argv', ['prescribe', *args]), \
            patch.object(main_module, 'setup_logging'):
        main_module.main()


@pytest.mark.unit
class TestMain:

    def test_list_sessions(self, config_file, tmp_path, capsys):
        store = SessionStore(str(tmp_path / "data"))
        session_id = store.create_session_directory()
        store.save_session(RecordingSession(title="Standup", start_time=datetime.now(),
                                            file_path=store.audio_path(session_id),
                                            session_id=session_id))

        _run_main('--config', config_file, '--list')

        out = capsys.readouterr().out
        assert "Sessions" in out
        assert "Standup" in out

    def test_delete_session(self, config_file, tmp_path, capsys):
        store = SessionStore(str(tmp_path / "data"))
        session_id = store.create_session_directory()
        store.save_session(RecordingSession(title="Old", start_time=datetime.now(),
                                            file_path=store.audio_path(session_id),
                                            session_id=session_id))

        _run_main('--config', config_file, '--delete', session_id)

        assert f"Deleted {session_id}" in capsys.readouterr().out
        assert store.load_session(session_id) is None

    def test_delete_unknown_session(self, config_file, capsys):
        _run_main('--config', config_file, '--delete', 'nope')
        assert "No session nope" in capsys.readouterr().out

    def test_missing_config(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            _run_main('--config', str(tmp_path / "missing.yaml"), '--list')

    def test_segment_length_override(self, config_file):
        with patch.object(main_module, "setup_logging"):
            server = main_module.Server(config_file)
        server.init(segment_length=5)

        assert server.service.segment_length == 5.0
