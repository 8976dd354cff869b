import io
import struct

import pytest

from mov2gpx.atoms import SectionReader, VisitorFunc, visit_atoms
from mov2gpx.errors import MalformedRead
from mov2gpx.processing.extract_gps import (
    GPS_RECORD_SIZE,
    SampleAccumulator,
    decode_gps_record,
    extract_gps,
    extract_gps_from_path,
    read_chunk_offsets,
    read_counted_string,
    read_gps_records,
    trim_trailing_zeros,
)
from mov_builder import (
    DISPLACEMENT,
    atom,
    f32,
    gps_block,
    mov_file,
    sound_trak,
    stco,
    text_item,
    video_trak,
)


def section(data: bytes) -> SectionReader:
    return SectionReader(io.BytesIO(data), 0, len(data))


def accumulate(data: bytes) -> SampleAccumulator:
    acc = SampleAccumulator()
    visit_atoms(acc, io.BytesIO(data))
    return acc


# ---------------------------------------------------------------------------
# Payload decoders
# ---------------------------------------------------------------------------


def test_trim_trailing_zeros():
    assert trim_trailing_zeros(bytes([0x41, 0x42, 0, 0, 0])) == b"AB"
    assert trim_trailing_zeros(bytes(3)) == b""
    assert trim_trailing_zeros(b"A\x00B") == b"A\x00B"
    assert trim_trailing_zeros(b"") == b""


def test_read_chunk_offsets():
    payload = stco([100, 200, 0xFFFFFFFF])[8:]
    assert read_chunk_offsets(section(payload)) == [100, 200, 0xFFFFFFFF]


def test_read_chunk_offsets_empty_table():
    assert read_chunk_offsets(section(struct.pack(">II", 0, 0))) == []


def test_read_chunk_offsets_short_table_is_fatal():
    payload = struct.pack(">III", 0, 3, 100)
    with pytest.raises(MalformedRead):
        read_chunk_offsets(section(payload))


def test_read_counted_string():
    payload = struct.pack(">HH", 5, 0x55C4) + b"NBDVR" + b"garbage"
    assert read_counted_string(section(payload)) == b"NBDVR"


def test_read_counted_string_zero_length():
    assert read_counted_string(section(struct.pack(">HH", 0, 0))) == b""


def test_read_counted_string_short_is_fatal():
    with pytest.raises(MalformedRead):
        read_counted_string(section(struct.pack(">HH", 10, 0) + b"abc"))
    with pytest.raises(MalformedRead):
        read_counted_string(section(b"\x00"))


# ---------------------------------------------------------------------------
# SampleAccumulator
# ---------------------------------------------------------------------------


def test_sound_state_follows_smhd_until_next_trak():
    acc = SampleAccumulator()
    states = []

    def visit(path, content):
        acc.visit(path, content)
        states.append((path[-1], acc.in_sound))

    data = atom("moov", sound_trak([100, 200]) + video_trak([300]))
    visit_atoms(VisitorFunc(visit), io.BytesIO(data))

    tags = [tag for tag, _ in states]
    smhd = tags.index("smhd")
    second_trak = tags.index("trak", smhd)
    assert not any(flag for _, flag in states[:smhd])
    assert all(flag for _, flag in states[smhd:second_trak])
    assert not any(flag for _, flag in states[second_trak:])
    assert acc.audio_offsets == [100, 200]


def test_video_stco_is_ignored():
    acc = accumulate(atom("moov", video_trak([1, 2, 3]) + sound_trak([100, 200])))
    assert acc.audio_offsets == [100, 200]


def test_stco_without_sound_track_gives_no_offsets():
    acc = accumulate(atom("moov", video_trak([1, 2, 3])))
    assert acc.audio_offsets == []


def test_last_sound_stco_wins():
    acc = accumulate(atom("moov", sound_trak([1, 2]) + sound_trak([7, 8, 9])))
    assert acc.audio_offsets == [7, 8, 9]


def test_udta_strings():
    udta = atom(
        "udta",
        text_item("\xa9fmt", b"NBDVR312GW\x00\x00\x00")
        + text_item("\xa9inf", b"NBDVR312GW-R01\x00"),
    )
    acc = accumulate(atom("moov", udta))
    assert acc.format == b"NBDVR312GW"
    assert acc.comment == b"NBDVR312GW-R01"
    assert acc.user_data.format == b"NBDVR312GW"


def test_udta_strings_need_udta_parent():
    acc = accumulate(atom("moov", text_item("\xa9fmt", b"nope")))
    assert acc.format is None
    assert acc.comment is None


def test_empty_udta_string():
    acc = accumulate(atom("moov", atom("udta", text_item("\xa9inf", b""))))
    assert acc.comment == b""


def test_last_udta_string_wins():
    udta = atom("udta", text_item("\xa9fmt", b"first")) + atom(
        "udta", text_item("\xa9fmt", b"second")
    )
    assert accumulate(atom("moov", udta)).format == b"second"


def test_truncated_udta_string_is_fatal():
    broken = atom("\xa9fmt", struct.pack(">HH", 20, 0) + b"short")
    with pytest.raises(MalformedRead):
        accumulate(atom("moov", atom("udta", broken)))


# ---------------------------------------------------------------------------
# GPS blocks
# ---------------------------------------------------------------------------


def test_record_size():
    assert GPS_RECORD_SIZE == 339


def test_decode_gps_record_fields():
    record = decode_gps_record(
        gps_block(
            hour=23,
            minute=59,
            second=58,
            year=19,
            month=12,
            day=31,
            status=b"A",
            lat_spec=b"S",
            lon_spec=b"E",
            latitude=3351.8765,
            longitude=15112.3456,
            speed=12.34,
            course=271.5,
            display_time=b"20191231235958",
            rmc=b"235958.00,A,3351.8765,S",
            gga=b"235958.000,3351.8765,S",
        )
    )
    assert record.block_type == b"free"
    assert record.is_valid
    assert (record.hour, record.minute, record.second) == (23, 59, 58)
    assert (record.year, record.month, record.day) == (19, 12, 31)
    assert record.receiver_status == b"A"
    assert record.latitude_spec == b"S"
    assert record.longitude_spec == b"E"
    assert record.latitude == f32(3351.8765)
    assert record.longitude == f32(15112.3456)
    assert record.speed == f32(12.34)
    assert record.course == f32(271.5)
    assert record.display_time == b"20191231235958"
    assert record.has_rmc
    assert record.rmc_entries.rstrip(b"\x00") == b"235958.00,A,3351.8765,S"
    assert record.has_gga
    assert record.gga_fields == [b"235958.000", b"3351.8765", b"S"]


def test_decode_gps_record_without_nmea_sections():
    record = decode_gps_record(gps_block())
    assert not record.has_rmc
    assert not record.has_gga
    assert record.gga_fields == []
    assert record.rmc_entries == bytes(72)


def test_decode_gps_record_short_buffer_is_fatal():
    with pytest.raises(MalformedRead):
        decode_gps_record(gps_block()[:-1])


def test_bad_magic_record_is_kept():
    source = io.BytesIO(bytes(DISPLACEMENT) + gps_block(magic=b"XXXX"))
    records = read_gps_records(source, [0])
    assert len(records) == 1
    assert records[0].magic == b"XXXX"
    assert not records[0].is_valid


def test_read_gps_records_custom_displacement():
    source = io.BytesIO(bytes(0x8010) + gps_block(hour=7))
    records = read_gps_records(source, [0x10], displacement=0x8000)
    assert records[0].hour == 7


def test_read_gps_records_past_end_is_fatal():
    source = io.BytesIO(bytes(DISPLACEMENT + 10))
    with pytest.raises(MalformedRead):
        read_gps_records(source, [0])


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


def test_extract_two_records_in_offset_order():
    first = gps_block(hour=1, minute=2, second=3, latitude=5130.5, longitude=7.25)
    second = gps_block(hour=4, minute=5, second=6, latitude=5131.5, longitude=7.5)
    data = mov_file(
        sound_trak([100, 200]),
        {100 + DISPLACEMENT: first, 200 + DISPLACEMENT: second},
    )
    result = extract_gps(io.BytesIO(data))

    assert len(result.records) == 2
    a, b = result.records
    # The blocks overlap, so only the leading fields of the first survive intact
    assert (a.hour, a.minute, a.second) == (1, 2, 3)
    assert (b.hour, b.minute, b.second) == (4, 5, 6)
    assert a.latitude == f32(5130.5)
    assert a.longitude == f32(7.25)
    assert b.latitude == f32(5131.5)
    assert b.longitude == f32(7.5)
    assert a.is_valid and b.is_valid


def test_extract_full_records_and_user_data():
    offsets = [0x1000, 0x2000, 0x3000]
    blocks = {
        o + DISPLACEMENT: gps_block(second=i, gga=b"101500.000,5130.2500,N")
        for i, o in enumerate(offsets)
    }
    blocks[offsets[2] + DISPLACEMENT] = gps_block(magic=bytes(4))
    moov = (
        video_trak([5, 6, 7])
        + sound_trak(offsets)
        + atom("udta", text_item("\xa9fmt", b"NBDVR\x00\x00") + text_item("\xa9inf", b"v1"))
    )
    result = extract_gps(io.BytesIO(mov_file(moov, blocks)))

    assert [r.second for r in result.records[:2]] == [0, 1]
    assert all(r.has_gga for r in result.records[:2])
    assert not result.records[2].is_valid
    assert len(result.valid_records) == 2
    assert result.user_data.format == b"NBDVR"
    assert result.user_data.comment == b"v1"


def test_extract_without_sound_track_returns_nothing():
    result = extract_gps(io.BytesIO(mov_file(video_trak([1]))))
    assert result.records == []
    assert result.user_data.format is None
    assert result.user_data.comment is None


def test_extract_missing_block_is_fatal():
    data = mov_file(sound_trak([0x1000, 0x9000000]), {0x1000 + DISPLACEMENT: gps_block()})
    with pytest.raises(MalformedRead):
        extract_gps(io.BytesIO(data))


def test_extract_gps_from_path(tmp_path):
    mov_path = tmp_path / "clip.MOV"
    mov_path.write_bytes(
        mov_file(sound_trak([0x1000]), {0x1000 + DISPLACEMENT: gps_block(day=3)})
    )
    result = extract_gps_from_path(mov_path, debug=True)
    assert [r.day for r in result.records] == [3]
