import logging
import os
import random
import stat

import pytest

import grin
from grin import (
    MAGIC,
    FormatError,
    TruncationError,
    build_frequency_table,
    count_frequencies,
    decode,
    decode_bytes,
    encode,
    encode_bytes,
    main,
)
from huffman import EOF_SYMBOL

SAMPLE_TEXT = b"a ab bza"


# Frequency counting

def test_frequency_table_of_sample(sample_file):
    assert build_frequency_table(sample_file) == {
        ord('a'): 3, ord(' '): 2, ord('b'): 2, ord('z'): 1, EOF_SYMBOL: 1,
    }


def test_frequency_table_of_empty_file(tmp_path):
    path = tmp_path / "empty"
    path.write_bytes(b"")
    assert build_frequency_table(path) == {EOF_SYMBOL: 1}


def test_count_frequencies_across_chunks():
    ft = count_frequencies([b"\x00\xff", b"", b"\xff"])
    assert ft == {0: 1, 255: 2, EOF_SYMBOL: 1}


def test_frequency_table_missing_file(tmp_path):
    with pytest.raises(OSError):
        build_frequency_table(tmp_path / "nope")


# Container layout

def test_empty_input_is_magic_tree_and_nothing_else():
    # magic, then 0 + 256 in 9 bits; the EOF code of a single leaf is empty
    assert encode_bytes(b"") == b"\x00\x00\x07\x36\x40\x00"
    assert decode_bytes(b"\x00\x00\x07\x36\x40\x00") == b""


def test_single_repeated_byte():
    blob = encode_bytes(b"aaaa")
    # tree: 1 0 100000000 0 001100001, payload: 1111 0
    assert blob == b"\x00\x00\x07\x36\xa0\x03\x0f\x80"
    assert decode_bytes(blob) == b"aaaa"


def test_sample_text_round_trip():
    blob = encode_bytes(SAMPLE_TEXT)
    assert blob[:4] == MAGIC.to_bytes(4, "big")
    # 32 magic + 54 tree + 20 payload bits
    assert len(blob) == 14
    assert decode_bytes(blob) == SAMPLE_TEXT


@pytest.mark.parametrize("seed,size", [(1, 1), (2, 17), (3, 1000), (4, 70_000)])
def test_random_round_trip(seed, size):
    rng = random.Random(seed)
    data = bytes(rng.randrange(256) for _ in range(size))
    assert decode_bytes(encode_bytes(data)) == data


def test_every_byte_value_round_trip():
    data = bytes(range(256)) * 3 + b"\x00" * 500
    assert decode_bytes(encode_bytes(data)) == data


def test_skewed_input_compresses():
    data = b"A" * 5000 + b"BC" * 10
    assert len(encode_bytes(data)) < len(data) // 4


# Failures

def test_bad_magic_fails_before_reading_tree():
    blob = bytearray(encode_bytes(SAMPLE_TEXT))
    blob[3] ^= 0x01
    with pytest.raises(FormatError, match="magic"):
        decode_bytes(bytes(blob))


def test_input_shorter_than_magic():
    with pytest.raises(FormatError, match="magic"):
        decode_bytes(b"\x00\x00\x07")


def test_magic_then_nothing():
    with pytest.raises(FormatError, match="tree"):
        decode_bytes(b"\x00\x00\x07\x36")


def test_truncated_payload():
    blob = encode_bytes(SAMPLE_TEXT)
    with pytest.raises(TruncationError):
        decode_bytes(blob[:12])


def test_errors_are_value_errors():
    assert issubclass(FormatError, ValueError)
    assert issubclass(TruncationError, grin.GrinError)


# Files

def test_encode_decode_files(sample_file, tmp_path):
    packed = tmp_path / "test.grin"
    restored = tmp_path / "test.txt"
    encode(sample_file, packed)
    decode(packed, restored)
    assert restored.read_bytes() == SAMPLE_TEXT
    assert packed.read_bytes() == encode_bytes(SAMPLE_TEXT)


def test_encode_decode_empty_file(tmp_path):
    src = tmp_path / "empty"
    src.write_bytes(b"")
    encode(src, tmp_path / "empty.grin")
    decode(tmp_path / "empty.grin", tmp_path / "empty.out")
    assert (tmp_path / "empty.out").read_bytes() == b""


def test_failed_decode_leaves_no_output(tmp_path):
    bad = tmp_path / "bad.grin"
    bad.write_bytes(b"not a grin file")
    out = tmp_path / "out.txt"
    with pytest.raises(FormatError):
        decode(bad, out)
    assert not out.exists()
    assert sorted(p.name for p in tmp_path.iterdir()) == ["bad.grin"]


def test_failed_decode_keeps_existing_output(tmp_path):
    bad = tmp_path / "bad.grin"
    bad.write_bytes(encode_bytes(SAMPLE_TEXT)[:12])
    out = tmp_path / "out.txt"
    out.write_bytes(b"keep")
    with pytest.raises(TruncationError):
        decode(bad, out)
    assert out.read_bytes() == b"keep"


def file_mode(path) -> int:
    return stat.S_IMODE(os.stat(path).st_mode)


def test_output_gets_default_file_mode(sample_file, tmp_path):
    reference = tmp_path / "plain.bin"
    with open(reference, "wb") as f:
        f.write(b"x")
    encode(sample_file, tmp_path / "out.grin")
    decode(tmp_path / "out.grin", tmp_path / "out.txt")
    assert file_mode(tmp_path / "out.grin") == file_mode(reference)
    assert file_mode(tmp_path / "out.txt") == file_mode(reference)


def test_overwritten_output_keeps_its_mode(sample_file, tmp_path):
    out = tmp_path / "out.grin"
    out.write_bytes(b"old")
    os.chmod(out, 0o640)
    encode(sample_file, out)
    assert file_mode(out) == 0o640
    assert out.read_bytes() == encode_bytes(SAMPLE_TEXT)


def test_encode_missing_input(tmp_path):
    with pytest.raises(OSError):
        encode(tmp_path / "missing", tmp_path / "out.grin")
    assert not (tmp_path / "out.grin").exists()


def test_encode_logs_at_debug(sample_file, tmp_path, caplog):
    with caplog.at_level(logging.DEBUG, logger="grin"):
        encode(sample_file, tmp_path / "x.grin")
    assert "5 leaves" in caplog.text
    assert "header 86 bits, payload 20 bits" in caplog.text


# Command line

def test_cli_round_trip(sample_file, tmp_path):
    packed = tmp_path / "cli.grin"
    restored = tmp_path / "cli.txt"
    assert main(["encode", str(sample_file), str(packed)]) == 0
    assert main(["-v", "decode", str(packed), str(restored)]) == 0
    assert restored.read_bytes() == SAMPLE_TEXT


@pytest.mark.parametrize("argv", [
    [],
    ["encode"],
    ["encode", "in"],
    ["encode", "in", "out", "extra"],
    ["compress", "in", "out"],
])
def test_cli_usage_errors_do_no_io(argv, tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(SystemExit) as exc:
        main(argv)
    assert exc.value.code == 2
    assert "usage:" in capsys.readouterr().err
    assert list(tmp_path.iterdir()) == []


def test_cli_reports_format_error(tmp_path, capsys):
    bad = tmp_path / "bad.grin"
    bad.write_bytes(b"\x00\x00\x00\x00")
    assert main(["decode", str(bad), str(tmp_path / "out")]) == 1
    assert "error: bad magic number" in capsys.readouterr().err


def test_cli_reports_missing_file(tmp_path, capsys):
    assert main(["encode", str(tmp_path / "missing"), str(tmp_path / "out")]) == 1
    assert "error:" in capsys.readouterr().err
