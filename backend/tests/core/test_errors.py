"""Error hierarchy - codes, HTTP statuses and the REST envelope."""

from spoolsync.core.errors import (
    ErrorCategory,
    InvalidUsageMetricError,
    NetworkError,
    NothingToUndoError,
    ProtocolError,
    RequestTimeoutError,
    ResourceNotFoundError,
    SocketConnectError,
    SpoolSyncError,
    UnknownSpoolError,
)


def test_network_errors_are_recoverable():
    assert NetworkError("down", endpoint="spool").recoverable
    assert RequestTimeoutError("spool", 5.0).recoverable
    assert SocketConnectError("connect", "refused").recoverable
    assert not ProtocolError("empty body").recoverable


def test_validation_errors_map_to_client_statuses():
    assert InvalidUsageMetricError("volume", ["length", "weight"]).http_status == 400
    assert UnknownSpoolError([4, 5]).http_status == 400
    assert NothingToUndoError().http_status == 409
    assert ResourceNotFoundError("spool", 9).http_status == 404


def test_every_error_is_a_spoolsync_error():
    for error in (NetworkError("x"), ProtocolError("x"), UnknownSpoolError([1])):
        assert isinstance(error, SpoolSyncError)


def test_to_response_envelope():
    body = ResourceNotFoundError("spool", 9).to_response()["error"]

    assert body["code"] == "RESOURCE_NOT_FOUND"
    assert body["category"] == ErrorCategory.RESOURCE_NOT_FOUND.value
    assert body["severity"] == "error"
    assert body["recoverable"] is False
    assert body["context"]["entity_kind"] == "spool"
    assert body["context"]["entity_id"] == 9


def test_unknown_spool_lists_ids():
    error = UnknownSpoolError([4, 5])
    assert error.message == "Unknown spool id(s): 4, 5"
    assert error.code == "UNKNOWN_SPOOL"


def test_network_error_keeps_endpoint_and_status():
    error = NetworkError("GET spool returned HTTP 502", endpoint="spool", status_code=502)
    assert error.context.endpoint == "spool"
    assert error.status_code == 502
    assert error.to_response()["error"]["context"]["endpoint"] == "spool"
