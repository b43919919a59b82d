"""File-backed store for RecordingSession records."""

import os
import json
import logging
import random
import shutil
import string
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..models.session import RecordingSession

logger = logging.getLogger(__name__)

SESSION_FILE = "session.json"
AUDIO_FILE = "recording.wav"


class SessionStore:
    """Stores each session as ``sessions/<session_id>/session.json`` beside its audio."""

    def __init__(self, data_dir: str = "./data"):
        """Initialize the store with a data directory.

        Args:
            data_dir: Base directory for storing all data
        """
        self.data_dir = Path(data_dir)
        self.sessions_dir = self.data_dir / "sessions"
        self._lock = threading.Lock()

        self._ensure_directories()
        logger.info(f"SessionStore initialized with data_dir: {self.data_dir}")

    def _ensure_directories(self) -> None:
        """Ensure all required directories exist."""
        for directory in [self.data_dir, self.sessions_dir]:
            directory.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Ensured directory exists: {directory}")

    def create_session_directory(self) -> str:
        """Create new session directory with timestamp and random suffix.

        Returns:
            Session ID (timestamp-based with random suffix)
        """
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        random_suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=4))
        session_id = f"{timestamp}_{random_suffix}"
        session_path = self.sessions_dir / session_id
        session_path.mkdir(exist_ok=True)

        logger.info(f"Created session directory: {session_path}")
        return session_id

    def get_session_path(self, session_id: str) -> Path:
        return self.sessions_dir / session_id

    def audio_path(self, session_id: str) -> str:
        """Path of the continuous audio file for a session."""
        return str(self.get_session_path(session_id) / AUDIO_FILE)

    def save_session(self, session: RecordingSession) -> str:
        """Insert or replace a session record.

        Returns:
            Path to the saved session file
        """
        session_path = self.get_session_path(session.session_id)
        session_path.mkdir(parents=True, exist_ok=True)
        info_file = session_path / SESSION_FILE
        tmp_file = session_path / f"{SESSION_FILE}.tmp"

        with self._lock:
            data = session.to_dict()
            with open(tmp_file, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_file, info_file)

        logger.debug(f"Session saved: {info_file} ({len(session.segments)} segments)")
        return str(info_file)

    def load_session(self, session_id: str) -> Optional[RecordingSession]:
        """Load a session record.

        Returns:
            RecordingSession or None if not found or unreadable
        """
        info_file = self.get_session_path(session_id) / SESSION_FILE
        if not info_file.exists():
            logger.warning(f"Session file not found: {info_file}")
            return None

        try:
            with open(info_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            return RecordingSession.from_dict(data)
        except (ValueError, KeyError, OSError) as e:
            logger.error(f"Error loading session {session_id}: {e}")
            return None

    def list_sessions(self) -> List[RecordingSession]:
        """All stored sessions, newest start time first."""
        sessions = []
        for path in self.sessions_dir.iterdir():
            if path.is_dir() and (path / SESSION_FILE).exists():
                session = self.load_session(path.name)
                if session:
                    sessions.append(session)

        sessions.sort(key=lambda s: s.start_time, reverse=True)
        logger.debug(f"Found {len(sessions)} sessions")
        return sessions

    def delete_session(self, session_id: str, remove_audio: bool = True) -> bool:
        """Delete a session record (and by default its directory and audio).

        Returns:
            True if anything was deleted
        """
        session_path = self.get_session_path(session_id)
        if not session_path.exists():
            logger.warning(f"Session not found for deletion: {session_id}")
            return False

        with self._lock:
            if remove_audio:
                shutil.rmtree(session_path)
            else:
                info_file = session_path / SESSION_FILE
                if info_file.exists():
                    info_file.unlink()
        logger.info(f"Deleted session {session_id}")
        return True
