"""
Tests for `scripts/submit_order_message.py` (parse-only paths).
"""

from __future__ import annotations

from scripts.submit_order_message import main

MESSAGE = "#order\nnama: Ali\nphone: 0123456789\nalamat: 123 Jalan Test\nposkod: 50000\nproduk: Bundle A\nbayaran: COD"


def test_dry_run_prints_parsed_order(tmp_path, capsys) -> None:
    path = tmp_path / "message.txt"
    path.write_text(MESSAGE, encoding="utf-8")

    assert main([str(path), "--dry-run"]) == 0

    out = capsys.readouterr().out
    assert "Ali" in out
    assert "COD" in out
    assert "minimum" in out


def test_incomplete_message_prints_format_hint(tmp_path, capsys) -> None:
    path = tmp_path / "message.txt"
    path.write_text("#order\nnama: Ali", encoding="utf-8")

    assert main([str(path), "--dry-run"]) == 2
    assert "Format: #order" in capsys.readouterr().err


def test_owner_is_required_to_submit(tmp_path, capsys) -> None:
    path = tmp_path / "message.txt"
    path.write_text(MESSAGE, encoding="utf-8")

    assert main([str(path)]) == 2
    assert "--device-id" in capsys.readouterr().err
