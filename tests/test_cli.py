import logging

from mov2gpx.scripts.mov_to_gpx import main
from mov_builder import DISPLACEMENT, atom, gps_block, mov_file, sound_trak, text_item


def write_mov(path, udta=None):
    udta = udta or text_item("\xa9fmt", b"NBDVR")
    moov = sound_trak([0x1000, 0x2000]) + atom("udta", udta)
    path.write_bytes(
        mov_file(
            moov,
            {
                0x1000 + DISPLACEMENT: gps_block(second=1),
                0x2000 + DISPLACEMENT: gps_block(second=2),
            },
        )
    )


def test_version(capsys):
    assert main(["-V"]) == 0
    assert "mov2gpx version" in capsys.readouterr().out


def test_no_paths_prints_usage():
    assert main([]) == 2


def test_convert_beside_mov(tmp_path):
    mov = tmp_path / "clip.MOV"
    write_mov(mov)
    assert main([str(mov)]) == 0
    text = (tmp_path / "clip.gpx").read_text()
    assert text.count("<trkpt") == 2


def test_existing_output_needs_overwrite(tmp_path):
    mov = tmp_path / "clip.MOV"
    write_mov(mov)
    (tmp_path / "clip.gpx").write_text("keep")
    assert main([str(mov)]) == 1
    assert (tmp_path / "clip.gpx").read_text() == "keep"
    assert main(["-w", str(mov)]) == 0
    assert "<trkpt" in (tmp_path / "clip.gpx").read_text()


def test_output_dir_gpx10_and_csv(tmp_path):
    mov = tmp_path / "clip.mov"
    write_mov(mov)
    out_dir = tmp_path / "tracks"
    out_dir.mkdir()
    assert main(["-O", str(out_dir), "-g", "0", "--csv", "-v", str(mov)]) == 0
    assert 'version="1.0"' in (out_dir / "clip.gpx").read_text()
    assert (out_dir / "clip.csv").exists()


def test_stdout(tmp_path, capsys):
    mov = tmp_path / "clip.MOV"
    write_mov(mov)
    assert main(["-O", "-", str(mov)]) == 0
    assert capsys.readouterr().out.count("<trkpt") == 2


def test_rejects_non_mov(tmp_path):
    mp4 = tmp_path / "clip.mp4"
    mp4.write_bytes(b"")
    assert main([str(mp4)]) == 1


def test_truncated_file_fails(tmp_path):
    mov = tmp_path / "clip.MOV"
    mov.write_bytes(atom("moov", sound_trak([0x1000])))
    assert main(["-w", str(mov)]) == 1


def test_failed_extraction_leaves_no_output(tmp_path):
    mov = tmp_path / "clip.MOV"
    mov.write_bytes(atom("moov", sound_trak([0x1000])))
    assert main([str(mov)]) == 1
    assert not (tmp_path / "clip.gpx").exists()
    # A retry after fixing the input needs no -w
    write_mov(mov)
    assert main([str(mov)]) == 0
    assert (tmp_path / "clip.gpx").read_text().count("<trkpt") == 2


def test_verbose_reports_user_data(tmp_path, caplog):
    caplog.set_level(logging.INFO, logger="mov2gpx")
    mov = tmp_path / "clip.MOV"
    write_mov(mov, text_item("\xa9fmt", b"NBDVR") + text_item("\xa9inf", b"FW 1.2.3"))
    assert main(["-v", str(mov)]) == 0
    assert "Comment: NBDVR\t Format/firmware: FW 1.2.3" in caplog.text
