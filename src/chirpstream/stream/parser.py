"""
Frame Parser
============

Turns a live response body into a lazy sequence of frames.

The streaming endpoint writes one JSON object per line and sends blank
lines as heartbeats while nothing else is flowing. The parser yields a
Frame for each line: object frames carry the decoded payload, blank
lines become keep-alive frames.

Design Rules:
    - Lazy and unbounded: lines are read only as frames are requested
    - Not restartable: a parser wraps exactly one body, iterated once
    - Ends when the body ends; I/O errors from the body propagate unchanged
    - Malformed JSON or invalid UTF-8 raises ProtocolError with the
      offending fragment
"""

import json
import logging
import time
from typing import Iterator

from chirpstream.errors import ProtocolError
from chirpstream.stream.frame import Frame


logger = logging.getLogger(__name__)

FRAGMENT_LENGTH = 64


def parse_payload(line: str) -> dict:
    """
    Decode one non-blank line into a JSON object.

    Args:
        line: Line text without terminator

    Returns:
        The decoded object

    Raises:
        ProtocolError: line is not valid JSON or not a JSON object
    """
    try:
        payload = json.loads(line)
    except json.JSONDecodeError as e:
        raise ProtocolError(
            f"Malformed frame: {e.msg}",
            fragment=line[:FRAGMENT_LENGTH],
        ) from e
    except RecursionError as e:
        raise ProtocolError(
            "Malformed frame: nested too deeply",
            fragment=line[:FRAGMENT_LENGTH],
        ) from e

    if not isinstance(payload, dict):
        raise ProtocolError(
            "Frame is not a JSON object",
            fragment=line[:FRAGMENT_LENGTH],
        )
    return payload


def decode_line(line: bytes) -> str:
    """
    Decode one raw line as UTF-8.

    Raises:
        ProtocolError: line is not valid UTF-8
    """
    try:
        return line.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ProtocolError(
            f"Frame is not valid UTF-8: {e.reason}",
            fragment=line[:FRAGMENT_LENGTH].decode("utf-8", errors="replace"),
        ) from e


class FrameParser:
    """
    Iterator of frames over one live body.

    Attributes:
        frames_parsed: Object frames produced so far
        keep_alives: Blank heartbeat lines seen so far

    Example:
        parser = FrameParser(body)
        for frame in parser:
            if frame.keep_alive:
                continue
            handle(frame.payload)
    """

    def __init__(self, body) -> None:
        """
        Initialize parser.

        Args:
            body: Object exposing iter_lines() (see transport.LiveBody)
        """
        self._body = body
        self._started = False
        self.frames_parsed: int = 0
        self.keep_alives: int = 0

    def __iter__(self) -> Iterator[Frame]:
        if self._started:
            raise RuntimeError("FrameParser cannot be restarted")
        self._started = True
        return self._frames()

    def _frames(self) -> Iterator[Frame]:
        for line in self._body.iter_lines():
            if isinstance(line, bytes):
                line = decode_line(line)
            line = line.strip()

            if not line:
                self.keep_alives += 1
                yield Frame(raw="", payload=None, received_at=time.monotonic())
                continue

            payload = parse_payload(line)
            self.frames_parsed += 1
            yield Frame(raw=line, payload=payload, received_at=time.monotonic())

        logger.debug(
            f"Body exhausted after {self.frames_parsed} frames "
            f"and {self.keep_alives} keep-alives"
        )
