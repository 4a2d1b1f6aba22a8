"""
Tests for shared_utils.error_handler.

Covers every exception subclass, to_dict() serialisation, HTTP status codes,
log_exception(), and handle_error().
"""

from unittest.mock import MagicMock

from shared_utils.constants import ErrorCode
from shared_utils.error_handler import (
    AppException,
    ConfigurationError,
    DeviceError,
    InferenceError,
    PersistenceError,
    SessionNotFoundError,
    SessionStateError,
    ValidationError,
    handle_error,
    log_exception,
)


# ---------------------------------------------------------------------------
# AppException base
# ---------------------------------------------------------------------------


class TestAppException:
    def test_defaults(self) -> None:
        exc = AppException(error_code="TEST", message="boom")
        assert exc.error_code == "TEST"
        assert exc.message == "boom"
        assert exc.http_status == 500
        assert exc.context == {}
        assert str(exc) == "boom"

    def test_to_dict_structure(self) -> None:
        exc = AppException("CODE", "msg", context={"a": 1})
        assert exc.to_dict() == {"error": {"code": "CODE", "message": "msg", "context": {"a": 1}}}


# ---------------------------------------------------------------------------
# Subclass-specific tests
# ---------------------------------------------------------------------------


class TestSubclasses:
    def test_validation_error(self) -> None:
        exc = ValidationError("bad input", context={"field": "x"})
        assert exc.error_code == ErrorCode.INVALID_INPUT.value
        assert exc.http_status == 400
        assert exc.context == {"field": "x"}

    def test_configuration_error(self) -> None:
        exc = ConfigurationError("missing key")
        assert exc.error_code == ErrorCode.INVALID_CONFIG.value
        assert exc.http_status == 500

    def test_device_error_prefixes_device(self) -> None:
        exc = DeviceError("microphone", "permission denied")
        assert exc.message == "microphone: permission denied"
        assert exc.context["device"] == "microphone"
        assert exc.http_status == 503

    def test_inference_error_records_operation(self) -> None:
        exc = InferenceError("transcription", "timeout", context={"model": "whisper-1"})
        assert exc.message == "transcription failed: timeout"
        assert exc.context == {"model": "whisper-1", "operation": "transcription"}
        assert exc.http_status == 502

    def test_persistence_error_context(self) -> None:
        exc = PersistenceError("Record not found", collection="sessions", record_id="s-1")
        assert exc.error_code == ErrorCode.PERSISTENCE_FAILED.value
        assert exc.context == {"collection": "sessions", "record_id": "s-1"}
        assert exc.http_status == 503

    def test_persistence_error_without_ids(self) -> None:
        assert PersistenceError("down").context == {}

    def test_session_not_found(self) -> None:
        exc = SessionNotFoundError("session_abc")
        assert exc.http_status == 404
        assert "session_abc" in exc.message

    def test_session_state_error(self) -> None:
        exc = SessionStateError("Session is not active")
        assert exc.error_code == ErrorCode.SESSION_STATE.value
        assert exc.http_status == 409


# ---------------------------------------------------------------------------
# log_exception / handle_error
# ---------------------------------------------------------------------------


class TestLogException:
    def test_app_exception_logged_with_code(self) -> None:
        logger = MagicMock()
        log_exception(ValidationError("bad"), logger=logger)
        logger.error.assert_called_once()
        assert logger.error.call_args[0][0] == "app_exception"
        assert logger.error.call_args[1]["error_code"] == ErrorCode.INVALID_INPUT.value

    def test_generic_exception_logged_with_type(self) -> None:
        logger = MagicMock()
        log_exception(RuntimeError("kaboom"), logger=logger)
        assert logger.error.call_args[0][0] == "unexpected_exception"
        assert logger.error.call_args[1]["error_type"] == "RuntimeError"


class TestHandleError:
    def test_app_exception_returns_to_dict(self) -> None:
        exc = SessionStateError("nope", context={"session_id": "s"})
        assert handle_error(exc) == exc.to_dict()

    def test_generic_exception_wrapped(self) -> None:
        result = handle_error(KeyError("k"))
        assert result["error"]["code"] == ErrorCode.EXTERNAL_SERVICE_ERROR.value
        assert result["error"]["context"] == {"error_type": "KeyError"}
