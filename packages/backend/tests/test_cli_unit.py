from __future__ import annotations

import uuid
from unittest.mock import AsyncMock

import pytest

from app import cli
from app.security.cipher import KEY_HEX_LENGTH
from app.services.key_rotation import KeyRotationReport


OLD_KEY_HEX = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"
NEW_KEY_HEX = "ffeeddccbbaa99887766554433221100ffeeddccbbaa99887766554433221100"


def test_generate_key_prints_hex_key(capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = cli.main(["generate-key"])

    printed = capsys.readouterr().out.strip()
    assert exit_code == 0
    assert len(printed) == KEY_HEX_LENGTH
    bytes.fromhex(printed)


@pytest.mark.parametrize(
    ("old_key", "new_key"),
    [("short", NEW_KEY_HEX), (OLD_KEY_HEX, "z" * 64), (OLD_KEY_HEX, OLD_KEY_HEX)],
)
def test_rotate_key_rejects_bad_key_arguments(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    old_key: str,
    new_key: str,
) -> None:
    rotate = AsyncMock()
    monkeypatch.setattr(cli, "_rotate", rotate)

    exit_code = cli.main(["rotate-key", "--old-key", old_key, "--new-key", new_key])

    assert exit_code == 2
    assert capsys.readouterr().err.startswith("error:")
    rotate.assert_not_called()


def test_rotate_key_reports_counts_and_fails_on_unreadable_items(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    failed_id = uuid.uuid4()
    rotate = AsyncMock(return_value=KeyRotationReport(rotated=3, already_rotated=1, failed_item_ids=[failed_id]))
    monkeypatch.setattr(cli, "_rotate", rotate)

    exit_code = cli.main(
        ["rotate-key", "--old-key", OLD_KEY_HEX, "--new-key", NEW_KEY_HEX, "--batch-size", "10"]
    )

    captured = capsys.readouterr()
    assert exit_code == 1
    assert "rotated=3 already_rotated=1 failed=1" in captured.out
    assert str(failed_id) in captured.err
    rotate.assert_awaited_once_with(bytes.fromhex(OLD_KEY_HEX), bytes.fromhex(NEW_KEY_HEX), 10)


def test_rotate_key_succeeds_when_every_item_is_readable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "_rotate", AsyncMock(return_value=KeyRotationReport(rotated=2)))

    assert cli.main(["rotate-key", "--old-key", OLD_KEY_HEX, "--new-key", NEW_KEY_HEX]) == 0
