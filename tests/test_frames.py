from __future__ import annotations

import io
import math

import pytest

from ventsim.errors import FrameDecodeError
from ventsim.telemetry.frames import (
    FrameParser,
    Sample,
    decode_frame,
    encode_frame,
    iterate_text_stream,
)


def test_decode_reference_frame() -> None:
    sample = decode_frame("P12.5F30.2V480.0?")
    assert sample == Sample(pressure=12.5, flow=30.2, volume=480.0)


def test_decode_signed_and_exponent_values() -> None:
    sample = decode_frame("P-1.5F-20V4.8e2?")
    assert sample.pressure == -1.5
    assert sample.flow == -20.0
    assert sample.volume == 480.0


@pytest.mark.parametrize(
    "values",
    [
        (18.123456789, -42.5, 0.1 + 0.2),
        (0.0, 0.0, 0.0),
        (-0.0, -12.5, -480.0),
        (1e-05, 1e20, 3.0),
        (123456789012345678, -(2**53), 7),
    ],
)
def test_encode_then_decode_recovers_values(values) -> None:
    expected = Sample(*(float(v) for v in values))
    decoded = decode_frame(encode_frame(Sample(*values)))
    assert decoded == expected
    for got, want in zip(
        (decoded.pressure, decoded.flow, decoded.volume),
        (expected.pressure, expected.flow, expected.volume),
    ):
        assert math.copysign(1.0, got) == math.copysign(1.0, want)


def test_encode_with_precision() -> None:
    assert encode_frame(Sample(12.5, 30.25, 480.0), precision=1) == "P12.5F30.2V480.0?"
    with pytest.raises(ValueError):
        encode_frame(Sample(math.inf, 0.0, 0.0))


def test_missing_field_raises_with_field_name() -> None:
    with pytest.raises(FrameDecodeError) as excinfo:
        decode_frame("P12.5F30.2?")
    assert excinfo.value.field == "volume"
    assert excinfo.value.reason == "missing field"


def test_non_numeric_field_raises() -> None:
    with pytest.raises(FrameDecodeError) as excinfo:
        decode_frame("PabcF1V2?")
    assert excinfo.value.field == "pressure"
    assert isinstance(excinfo.value, ValueError)


def test_lenient_decode_yields_nan() -> None:
    sample = decode_frame("P12.5F--V480?", strict=False)
    assert sample.pressure == 12.5
    assert math.isnan(sample.flow)
    assert sample.volume == 480.0


def test_parser_skips_bad_frames_and_counts_them() -> None:
    parser = FrameParser()
    lines = ["P1F2V3?\n", "garbage\n", "\n", "P4F5V6?\n"]
    samples = list(parser.parse_lines(lines))
    assert samples == [Sample(1.0, 2.0, 3.0), Sample(4.0, 5.0, 6.0)]
    assert parser.stats() == {"frames": 2, "decode_errors": 1}
    assert parser.last_error is not None
    assert parser.last_error.frame == "garbage"

    parser.reset()
    assert parser.stats() == {"frames": 0, "decode_errors": 0}
    assert parser.last_error is None


def test_iterate_text_stream_drops_comments_and_blanks() -> None:
    handle = io.StringIO("# recorded session\nP1F2V3?\n\n  P4F5V6?  \n")
    assert list(iterate_text_stream(handle)) == ["P1F2V3?", "P4F5V6?"]


@pytest.mark.parametrize(
    "frame, field",
    [
        ("P12.5F30.2V48", None),
        ("P12.5F30.2V480.0", None),
        ("P12.5F30.2V480.0?junk", None),
        ("P12.5xyzF30.2V480.0?", "pressure"),
        ("P12.5F30.2.1V480.0?", "flow"),
        ("P12.5F30.2Vnan?", "volume"),
    ],
)
def test_strict_decode_rejects_partial_or_trailing_garbage(frame: str, field) -> None:
    with pytest.raises(FrameDecodeError) as excinfo:
        decode_frame(frame)
    assert excinfo.value.field == field


def test_lenient_decode_reads_leading_numbers() -> None:
    sample = decode_frame("P12.5xyzF30.2V48", strict=False)
    assert sample == Sample(12.5, 30.2, 48.0)


def test_parser_discards_truncated_frames() -> None:
    parser = FrameParser()
    samples = list(parser.parse_lines(["P1F2V3?", "P4F5V6", "P7F8V9?"]))
    assert samples == [Sample(1.0, 2.0, 3.0), Sample(7.0, 8.0, 9.0)]
    assert parser.stats()["decode_errors"] == 1
