"""Unit tests for RecordingService lifecycle and state."""

import pytest
from pubsub import pub

from prescribe.config import PrescribeConfig
from prescribe.control import ControlLoop
from prescribe.errors import CaptureError, DeviceUnavailableError, PermissionDeniedError
from prescribe.services.recording_service import STATE_TOPIC, RecordingService
from prescribe.storage.session_store import SessionStore


@pytest.fixture
def service(temp_data_dir, fake_backend, mock_pyaudio):
    config = PrescribeConfig()
    config.set('storage.data_directory', temp_data_dir)
    svc = RecordingService(
        config,
        store=SessionStore(temp_data_dir),
        remote=fake_backend("remote"),
        local=fake_backend("local"),
        # Ticks are driven by the tests
        control_loop=ControlLoop(tick_interval=3600),
    )
    yield svc
    svc.shutdown(5.0)


@pytest.mark.unit
class TestRecordingService:

    def test_permission_granted(self, service):
        assert service.request_permission() is True
        assert service.permission_granted is True

    def test_permission_denied_blocks_start(self, service, mock_pyaudio):
        mock_pyaudio['instance'].get_default_input_device_info.return_value = {
            'index': 0, 'name': 'None', 'maxInputChannels': 0, 'defaultSampleRate': 16000.0}

        assert service.request_permission() is False
        with pytest.raises(PermissionDeniedError):
            service.start_recording()

        state = service.current_state()
        assert state.is_recording is False
        assert state.last_error == "Microphone permission required"
        assert service.list_sessions() == []
        assert list(service.store.sessions_dir.iterdir()) == []

    def test_start_and_stop(self, service):
        service.request_permission()
        session = service.start_recording("Standup")

        state = service.current_state()
        assert state.is_recording is True
        assert state.session_id == session.session_id
        assert session.title == "Standup"
        assert service.store.load_session(session.session_id) is not None

        finalized = service.stop_recording()
        assert finalized is session
        assert finalized.is_finalized
        assert service.current_state().is_recording is False
        assert service.current_state().session_id is None

    def test_default_title(self, service):
        service.request_permission()
        session = service.start_recording()
        assert session.title.startswith("Recording ")
        service.stop_recording()

    def test_start_twice(self, service):
        service.request_permission()
        service.start_recording()
        with pytest.raises(CaptureError):
            service.start_recording()
        service.stop_recording()

    def test_stop_when_idle(self, service):
        with pytest.raises(CaptureError):
            service.stop_recording()

    def test_device_failure_recorded(self, service, mock_pyaudio):
        service.request_permission()
        mock_pyaudio['instance'].open.side_effect = OSError("Device busy")

        with pytest.raises(DeviceUnavailableError):
            service.start_recording()
        assert "Device busy" in service.current_state().last_error

    def test_pause_resume_and_clock(self, service):
        service.request_permission()
        service.start_recording()

        service.control_loop.tick()
        service.pause_recording()
        assert service.current_state().is_paused is True
        service.control_loop.tick()
        assert service.current_state().recording_time == pytest.approx(0.1)

        service.resume_recording()
        service.control_loop.tick()
        assert service.current_state().is_paused is False
        assert service.current_state().recording_time == pytest.approx(0.2)
        service.stop_recording()

    def test_state_published_on_change(self, service):
        states = []

        def listener(event):
            states.append(event)

        pub.subscribe(listener, STATE_TOPIC)
        try:
            service.request_permission()
            service.start_recording()
            service.control_loop.tick()
            service.stop_recording()
        finally:
            pub.unsubscribe(listener, STATE_TOPIC)

        assert any(s.is_recording for s in states)
        assert any(s.recording_time == pytest.approx(0.1) for s in states)
        assert states[-1].is_recording is False
        # Only changes are published
        assert all(a != b for a, b in zip(states, states[1:]))

    def test_cannot_delete_active_session(self, service):
        service.request_permission()
        session = service.start_recording()
        with pytest.raises(CaptureError):
            service.delete_session(session.session_id)
        service.stop_recording()

        assert service.delete_session(session.session_id) is True
        assert service.list_sessions() == []
