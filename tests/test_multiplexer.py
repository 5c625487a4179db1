"""Unit tests for the line multiplexer: framing, sanitizing and forced wraps."""

from __future__ import annotations

import os

import pytest

from pipevisor.local.supervisor.multiplexer import LineBuffer, LineMultiplexer


@pytest.fixture
def pipe():
    read_fd, write_fd = os.pipe()
    yield read_fd, write_fd
    for fd in (read_fd, write_fd):
        try:
            os.close(fd)
        except OSError:
            pass


def make_mux(capacity: int = 120) -> tuple[LineMultiplexer, list]:
    lines: list = []
    return LineMultiplexer("TEST", capacity, lines.append), lines


class TestLineBuffer:
    def test_starts_empty(self):
        buffer = LineBuffer(4)
        assert buffer.position == 0
        assert buffer.free == 4

    def test_take_resets(self):
        buffer = LineBuffer(4)
        buffer.append(ord("a"))
        buffer.append(ord("b"))
        assert buffer.take() == b"ab"
        assert buffer.position == 0
        assert buffer.free == 4

    def test_rejects_zero_capacity(self):
        with pytest.raises(ValueError):
            LineBuffer(0)


class TestPump:
    def test_line_split_across_reads(self, pipe):
        read_fd, write_fd = pipe
        mux, lines = make_mux()

        os.write(write_fd, b"line-one\nli")
        assert mux.pump(read_fd) is True
        assert lines == ["line-one"]

        os.write(write_fd, b"ne-two\n")
        assert mux.pump(read_fd) is True
        assert lines == ["line-one", "line-two"]

    def test_long_line_is_wrapped_at_capacity(self, pipe):
        read_fd, write_fd = pipe
        mux, lines = make_mux(capacity=10)

        os.write(write_fd, b"abcdefghijklmno\n")
        assert mux.pump(read_fd) is True
        assert lines == ["abcdefghij"]

        assert mux.pump(read_fd) is True
        assert lines == ["abcdefghij", "klmno"]

    def test_newline_right_after_wrap_adds_no_empty_line(self):
        mux, lines = make_mux(capacity=3)
        mux.feed(b"abc\ndef\n")
        assert lines == ["abc", "def"]

    def test_control_bytes_become_spaces(self):
        mux, lines = make_mux()
        mux.feed(b"a\x07b\x7fc\x1bd\n")
        assert lines == ["a b c d"]

    def test_carriage_return_is_dropped_and_uses_no_space(self, pipe):
        read_fd, write_fd = pipe
        mux, lines = make_mux(capacity=3)

        os.write(write_fd, b"ab\r\r\rc")
        while not lines:
            assert mux.pump(read_fd) is True
        assert lines == ["abc"]

    def test_crlf_lines(self):
        mux, lines = make_mux()
        mux.feed(b"one\r\ntwo\r\n")
        assert lines == ["one", "two"]

    def test_eof_flushes_partial_line(self, pipe):
        read_fd, write_fd = pipe
        mux, lines = make_mux()

        os.write(write_fd, b"tail without newline")
        os.close(write_fd)
        assert mux.pump(read_fd) is True
        assert lines == []

        assert mux.pump(read_fd) is False
        assert lines == ["tail without newline"]

    def test_eof_on_empty_buffer_emits_nothing(self, pipe):
        read_fd, write_fd = pipe
        mux, lines = make_mux()
        os.close(write_fd)
        assert mux.pump(read_fd) is False
        assert lines == []

    def test_read_error_reports_closed(self, monkeypatch):
        mux, lines = make_mux()

        def broken_read(fd, n):
            raise OSError(5, "Input/output error")

        monkeypatch.setattr(os, "read", broken_read)
        assert mux.pump(99) is False
        assert lines == []

    def test_empty_lines_are_kept(self):
        mux, lines = make_mux()
        mux.feed(b"a\n\nb\n")
        assert lines == ["a", "", "b"]

    def test_non_utf8_bytes_pass_through(self):
        mux, lines = make_mux()
        mux.feed(b"caf\xe9 \xff\n")
        assert [line.encode("utf-8", "surrogateescape") for line in lines] == [b"caf\xe9 \xff"]

    def test_wrap_inside_multibyte_character_keeps_bytes(self):
        mux, lines = make_mux(capacity=10)
        mux.feed("aaaaaaaaaé\n".encode("utf-8"))

        assert len(lines) == 2
        raw = b"".join(line.encode("utf-8", "surrogateescape") for line in lines)
        assert raw == b"aaaaaaaaa\xc3\xa9"
