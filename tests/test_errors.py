import errno

import pytest

from tftpd.errors import (
    ErrorCode, IOFailure, ProtocolError, TFTPError, TransferTimeout,
    code_for_os_error, describe,
)
from tftpd.packet import ErrorPacket


def test_every_code_has_distinct_description():
    descriptions = [describe(code) for code in ErrorCode]
    assert len(descriptions) == 8
    assert len(set(descriptions)) == 8
    assert describe(ErrorCode.FILE_NOT_FOUND) == 'File not found'
    assert describe(ErrorCode.NO_SUCH_USER) == 'No such user'


def test_unknown_code_description():
    assert describe(42) == 'Unknown error'


@pytest.mark.parametrize('code', list(ErrorCode))
def test_protocol_error_carries_code_and_message(code):
    error = ProtocolError.from_packet(ErrorPacket(code, 'peer says no'))
    assert error.code == code
    assert error.message == 'peer says no'
    assert describe(code) in str(error)
    assert 'peer says no' in str(error)
    assert isinstance(error, TFTPError)


def test_protocol_error_is_not_reported_back():
    assert not ProtocolError(ErrorCode.DISK_FULL).reportable
    assert not TransferTimeout('silence').reportable


@pytest.mark.parametrize('error, code', [
    (FileNotFoundError(errno.ENOENT, 'missing'), ErrorCode.FILE_NOT_FOUND),
    (NotADirectoryError(errno.ENOTDIR, 'not a dir'), ErrorCode.FILE_NOT_FOUND),
    (PermissionError(errno.EACCES, 'denied'), ErrorCode.ACCESS_VIOLATION),
    (IsADirectoryError(errno.EISDIR, 'dir'), ErrorCode.ACCESS_VIOLATION),
    (FileExistsError(errno.EEXIST, 'exists'), ErrorCode.FILE_ALREADY_EXISTS),
    (OSError(errno.ENOSPC, 'no space'), ErrorCode.DISK_FULL),
    (OSError(errno.EIO, 'io'), ErrorCode.NOT_DEFINED),
])
def test_code_for_os_error(error, code):
    assert code_for_os_error(error) == code


def test_io_failure_hides_local_path():
    error = IOFailure(PermissionError(errno.EACCES, 'Permission denied', '/srv/tftp/secret'))
    assert error.code == ErrorCode.ACCESS_VIOLATION
    assert '/srv/tftp/secret' in str(error)
    assert error.peer_message == 'Access violation'
