"""
Frame Parser Tests
==================

Tests for turning a live body into frames.
"""

import pytest

from chirpstream.errors import NetworkError, ProtocolError
from chirpstream.stream.frame import Frame
from chirpstream.stream.parser import FrameParser, parse_payload


class LinesBody:
    """Body yielding fixed lines, optionally failing at the end."""

    def __init__(self, lines, error=None):
        self._lines = lines
        self._error = error
        self.reads = 0

    def iter_lines(self):
        for line in self._lines:
            self.reads += 1
            yield line
        if self._error is not None:
            raise self._error


class TestParsePayload:
    def test_object(self):
        assert parse_payload('{"id": 1}') == {"id": 1}

    def test_malformed_json_keeps_fragment(self):
        line = '{"id": 1, "text": ' + "a" * 100
        with pytest.raises(ProtocolError) as exc_info:
            parse_payload(line)
        assert exc_info.value.fragment == line[:64]
        assert "Malformed frame" in str(exc_info.value)

    def test_non_object_rejected(self):
        with pytest.raises(ProtocolError, match="not a JSON object"):
            parse_payload("[1, 2]")


class TestFrameParser:
    """Tests for FrameParser iteration."""

    def test_frames_in_order(self):
        body = LinesBody(['{"id": 1}', '{"id": 2}', '{"id": 3}'])
        frames = list(FrameParser(body))
        assert [frame.payload["id"] for frame in frames] == [1, 2, 3]
        assert all(isinstance(frame, Frame) for frame in frames)

    def test_raw_text_preserved(self):
        line = '{"id": 1, "text": "caf\\u00e9"}'
        frame = next(iter(FrameParser(LinesBody([line]))))
        assert frame.raw == line
        assert frame.payload["text"] == "café"

    def test_blank_lines_are_keep_alives(self):
        parser = FrameParser(LinesBody(["", '{"id": 1}', "   ", ""]))
        frames = list(parser)
        assert [frame.keep_alive for frame in frames] == [True, False, True, True]
        assert parser.keep_alives == 3
        assert parser.frames_parsed == 1

    def test_bytes_lines_decoded(self):
        frames = list(FrameParser(LinesBody([b'{"id": 7}\r'])))
        assert frames[0].payload == {"id": 7}

    def test_invalid_utf8_raises_protocol_error(self):
        frames = iter(FrameParser(LinesBody([b'{"id": 1}', b'{"id": 2, "text": "\xff\xfe"}'])))
        assert next(frames).payload == {"id": 1}
        with pytest.raises(ProtocolError) as exc_info:
            next(frames)
        assert "UTF-8" in str(exc_info.value)
        assert exc_info.value.fragment.startswith('{"id": 2')

    def test_deeply_nested_line_raises_protocol_error(self):
        line = '{"a": ' + "[" * 100_000 + "]" * 100_000 + "}"
        with pytest.raises(ProtocolError) as exc_info:
            list(FrameParser(LinesBody([line])))
        assert exc_info.value.fragment == line[:64]

    def test_lazy(self):
        """Lines are read only as frames are requested."""
        body = LinesBody(['{"id": 1}', '{"id": 2}'])
        frames = iter(FrameParser(body))
        next(frames)
        assert body.reads == 1

    def test_malformed_line_raises(self):
        frames = iter(FrameParser(LinesBody(['{"id": 1}', "{oops"])))
        assert next(frames).payload == {"id": 1}
        with pytest.raises(ProtocolError) as exc_info:
            next(frames)
        assert exc_info.value.fragment == "{oops"

    def test_body_errors_propagate(self):
        body = LinesBody(['{"id": 1}'], error=NetworkError("reset"))
        with pytest.raises(NetworkError):
            list(FrameParser(body))

    def test_not_restartable(self):
        parser = FrameParser(LinesBody([]))
        list(parser)
        with pytest.raises(RuntimeError):
            iter(parser)

    def test_keep_alive_repr(self):
        frame = Frame(raw="", payload=None, received_at=1.0)
        assert "keep_alive" in repr(frame)
