"""Unit tests for target file access helpers."""

import errno
import hashlib
import os
import pytest
from unittest.mock import patch

from apkserver.exceptions import ApkNotFoundError, ApkReadError, ApkStatError, StreamInterruptedError
from apkserver.services.apk_service import (
    ApkStat,
    ByteRange,
    build_headers,
    compute_etag,
    format_mtime_ms,
    open_span,
    parse_range,
    stat_apk,
)


class TestEtag:
    """Tests for the validation token."""

    def test_etag_matches_sha1_of_size_and_mtime(self):
        """Test token is the SHA-1 hex of '<size>-<mtime_ms>'."""
        expected = hashlib.sha1(b'1024-1700000000123.5').hexdigest()

        assert compute_etag(1024, 1700000000123.5) == expected

    def test_integral_mtime_has_no_fraction(self):
        """Test integral milliseconds render without '.0'."""
        assert format_mtime_ms(1700000000000.0) == '1700000000000'
        assert format_mtime_ms(1700000000000.25) == '1700000000000.25'

    def test_etag_changes_with_size(self):
        """Test different sizes give different tokens."""
        assert compute_etag(1024, 1700000000000.0) != compute_etag(1025, 1700000000000.0)

    def test_etag_changes_with_mtime(self):
        """Test different modification times give different tokens."""
        assert compute_etag(1024, 1700000000000.0) != compute_etag(1024, 1700000000001.0)

    def test_etag_is_deterministic(self):
        """Test the same file state always gives the same token."""
        stat = ApkStat(size=10, mtime_ms=1234.5)

        assert stat.etag == ApkStat(size=10, mtime_ms=1234.5).etag
        assert len(stat.etag) == 40


class TestParseRange:
    """Tests for Range header parsing."""

    def test_no_header(self):
        """Test missing header means full file."""
        assert parse_range(None, 100) is None
        assert parse_range('', 100) is None

    def test_closed_range(self):
        """Test 'bytes=a-b' parses both ends."""
        assert parse_range('bytes=10-19', 100) == ByteRange(start=10, end=19)

    def test_open_ended_range_defaults_to_last_byte(self):
        """Test 'bytes=a-' ends at size - 1."""
        assert parse_range('bytes=10-', 100) == ByteRange(start=10, end=99)

    def test_zero_end_is_kept(self):
        """Test an explicit end of 0 is not treated as missing."""
        assert parse_range('bytes=0-0', 100) == ByteRange(start=0, end=0)

    def test_suffix_range_is_not_recognised(self):
        """Test 'bytes=-500' falls through to a full-file request."""
        assert parse_range('bytes=-500', 1000) is None

    def test_other_units_are_not_recognised(self):
        """Test non-byte units fall through to a full-file request."""
        assert parse_range('items=0-5', 1000) is None
        assert parse_range('garbage', 1000) is None

    def test_multi_range_uses_first(self):
        """Test only the first range of a list is honoured."""
        assert parse_range('bytes=0-9,20-29', 100) == ByteRange(start=0, end=9)

    def test_oversized_offsets_clamp_to_size(self):
        """Test offsets longer than the size clamp to an unsatisfiable span."""
        byte_range = parse_range('bytes=' + '9' * 5000 + '-', 100)

        assert byte_range == ByteRange(start=100, end=99)
        assert not byte_range.is_satisfiable(100)

    def test_leading_zeros_are_ignored(self):
        """Test zero-padded offsets parse to their value."""
        assert parse_range('bytes=' + '0' * 5000 + '10-' + '0' * 5000 + '19', 100) == ByteRange(start=10, end=19)

    def test_unsatisfiable_ranges_are_still_parsed(self):
        """Test out-of-bounds ranges are returned for the caller to reject."""
        byte_range = parse_range('bytes=150-160', 100)

        assert byte_range == ByteRange(start=150, end=160)
        assert not byte_range.is_satisfiable(100)


class TestByteRange:
    """Tests for byte span bounds."""

    @pytest.mark.parametrize('start,end', [(0, 0), (0, 99), (50, 60), (99, 99)])
    def test_satisfiable(self, start, end):
        """Test spans inside the file are satisfiable."""
        assert ByteRange(start, end).is_satisfiable(100)

    @pytest.mark.parametrize('start,end', [(100, 100), (0, 100), (60, 50), (200, 300)])
    def test_unsatisfiable(self, start, end):
        """Test spans past the end or inverted are not satisfiable."""
        assert not ByteRange(start, end).is_satisfiable(100)

    def test_empty_file_has_no_satisfiable_range(self):
        """Test every range of an empty file is rejected."""
        assert not ByteRange(0, -1).is_satisfiable(0)

    def test_length_and_content_range(self):
        """Test derived header values."""
        byte_range = ByteRange(10, 19)

        assert byte_range.length == 10
        assert byte_range.content_range(100) == 'bytes 10-19/100'


def test_build_headers():
    """Test headers sent on every response for an existing file."""
    stat = ApkStat(size=10, mtime_ms=784111777000.0)

    headers = build_headers(stat)

    assert headers['Content-Type'] == 'application/vnd.android.package-archive'
    assert headers['Last-Modified'] == 'Sun, 06 Nov 1994 08:49:37 GMT'
    assert headers['ETag'] == stat.etag
    assert headers['Accept-Ranges'] == 'bytes'
    assert headers['Cache-Control'] == 'public, max-age=31536000, immutable'


class TestStatApk:
    """Tests for asynchronous stat."""

    @pytest.mark.asyncio
    async def test_stat_existing_file(self, apk_path, apk_bytes):
        """Test size and mtime come from the file."""
        stat = await stat_apk(apk_path)

        assert stat.size == len(apk_bytes)
        assert stat.mtime_ms == os.stat(apk_path).st_mtime_ns / 1_000_000

    @pytest.mark.asyncio
    async def test_stat_missing_file(self, apk_dir):
        """Test absent file raises ApkNotFoundError."""
        with pytest.raises(ApkNotFoundError):
            await stat_apk(apk_dir / 'missing.apk')

    @pytest.mark.asyncio
    async def test_stat_permission_error(self, apk_path):
        """Test other stat failures raise ApkStatError."""
        with patch('os.stat', side_effect=PermissionError(errno.EACCES, 'Permission denied')):
            with pytest.raises(ApkStatError):
                await stat_apk(apk_path)


async def _collect(stream):
    return b''.join([piece async for piece in stream])


class TestOpenSpan:
    """Tests for streaming the target file."""

    @pytest.mark.asyncio
    async def test_full_file(self, apk_path, apk_bytes):
        """Test streaming without a range yields the whole file."""
        stream = await open_span(apk_path, None, len(apk_bytes), 4096)

        assert await _collect(stream) == apk_bytes

    @pytest.mark.asyncio
    async def test_range(self, apk_path, apk_bytes):
        """Test streaming a range yields exactly that span."""
        stream = await open_span(apk_path, ByteRange(5000, 70000), len(apk_bytes), 4096)

        assert await _collect(stream) == apk_bytes[5000:70001]

    @pytest.mark.asyncio
    async def test_empty_file(self, apk_dir):
        """Test an empty file streams no bytes."""
        path = apk_dir / 'empty.apk'
        path.write_bytes(b'')

        stream = await open_span(path, None, 0, 4096)

        assert await _collect(stream) == b''

    @pytest.mark.asyncio
    async def test_open_failure(self, apk_dir):
        """Test a file that vanished after stat raises ApkReadError."""
        with pytest.raises(ApkReadError):
            await open_span(apk_dir / 'missing.apk', None, 10, 4096)

    @pytest.mark.asyncio
    async def test_first_read_failure(self, apk_path, apk_bytes):
        """Test a failing first read raises ApkReadError before streaming."""
        with patch('apkserver.services.apk_service._read_piece', side_effect=OSError(errno.EIO, 'I/O error')):
            with pytest.raises(ApkReadError):
                await open_span(apk_path, None, len(apk_bytes), 4096)

    @pytest.mark.asyncio
    async def test_truncated_file_before_first_read(self, apk_path):
        """Test a file shorter than its stat size raises ApkReadError."""
        with pytest.raises(ApkReadError):
            await open_span(apk_path, ByteRange(10**9, 10**9 + 10), 10**9 + 11, 4096)

    @pytest.mark.asyncio
    async def test_mid_stream_failure(self, apk_path, apk_bytes):
        """Test a read failing after the first piece raises StreamInterruptedError."""
        calls = []

        def failing_read(handle, size):
            calls.append(size)
            if len(calls) > 1:
                raise OSError(errno.EIO, 'I/O error')
            return handle.read(size)

        with patch('apkserver.services.apk_service._read_piece', side_effect=failing_read):
            stream = await open_span(apk_path, None, len(apk_bytes), 4096)
            received = b''
            with pytest.raises(StreamInterruptedError):
                async for piece in stream:
                    received += piece

        assert received == apk_bytes[:4096]
