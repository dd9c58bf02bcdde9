import builtins
import logging
import os
from datetime import datetime

import pytest

from conftest import FakeSession, failed
from sitemigrate.modules.archive import archive_name, archive_site
from sitemigrate.modules.gateway import LocalSession
from sitemigrate.modules.removal import confirm, delete_site
from sitemigrate.utils.config import ArchiveOptions
from sitemigrate.utils.errors import AdvisoryFailure, CommandError, UserDeclined

SITE = "/var/opt/example.com"
WHEN = datetime(2025, 6, 1, 12, 30, 45)


class TestArchiveName:
    def test_plain(self):
        assert archive_name("/var/opt/example.com/") == "example.com"

    def test_timestamped(self):
        assert archive_name(SITE, with_timestamp=True, now=WHEN) == "example.com-20250601-123045"


class TestArchiveSite:
    def test_move(self):
        session = FakeSession("old")
        result = archive_site(session, "example.com", SITE, ArchiveOptions(directory="/archive"))
        assert result == "/archive/example.com"
        assert session.commands == ["mkdir -p /archive && mv /var/opt/example.com /archive/example.com"]

    def test_fallback_to_copy_and_delete(self):
        def handler(host, c):
            return failed(stderr="Invalid cross-device link") if " mv " in c else None

        session = FakeSession("old", handler)
        archive_site(session, "example.com", SITE, ArchiveOptions(directory="/archive"))
        assert session.commands[1] == (
            "mkdir -p /archive && rsync -a /var/opt/example.com/ /archive/example.com/ "
            "&& rm -rf /var/opt/example.com"
        )

    def test_both_strategies_fail(self):
        session = FakeSession("old", lambda host, c: failed())
        with pytest.raises(AdvisoryFailure) as exc:
            archive_site(session, "example.com", SITE, ArchiveOptions(directory="/archive"))
        assert exc.value.stage == "archive"

    @pytest.mark.parametrize("kind,expected", [
        ("xz", "tar -cJf /archive/example.com-20250601-123045.tar.xz -C /archive example.com-20250601-123045"),
        ("gzip", "tar -czf /archive/example.com-20250601-123045.tar.gz -C /archive example.com-20250601-123045"),
    ])
    def test_compress(self, kind, expected):
        session = FakeSession("old")
        opts = ArchiveOptions(directory="/archive", with_timestamp=True, compress=True, compression=kind)
        result = archive_site(session, "example.com", SITE, opts, now=WHEN)
        assert session.commands[-1] == expected
        assert result == expected.split()[2]

    def test_dry_run(self):
        session = FakeSession("old")
        opts = ArchiveOptions(directory="/archive", compress=True)
        assert archive_site(session, "example.com", SITE, opts, dry_run=True) is None
        assert session.commands == []

    def test_local_move_on_disk(self, tmp_path):
        site = tmp_path / "sites" / "example.com"
        site.mkdir(parents=True)
        (site / "index.php").write_text("<?php")
        archive_root = tmp_path / "archive"

        result = archive_site(LocalSession(), "example.com", str(site), ArchiveOptions(directory=str(archive_root)))
        assert result == str(archive_root / "example.com")
        assert not site.exists()
        assert (archive_root / "example.com" / "index.php").exists()


class TestConfirm:
    @pytest.mark.parametrize("answer,expected", [
        ("y", True), ("YES", True), (" yes ", True), ("", False), ("n", False), ("maybe", False),
    ])
    def test_answers(self, monkeypatch, answer, expected):
        monkeypatch.setattr(builtins, "input", lambda message: answer)
        assert confirm("Delete? [y/N]: ") is expected

    def test_eof_declines(self, monkeypatch):
        def eof(message):
            raise EOFError

        monkeypatch.setattr(builtins, "input", eof)
        assert confirm("Delete? [y/N]: ") is False


class TestDeleteSite:
    def test_force(self):
        session = FakeSession("old")
        assert delete_site(session, "example.com", SITE, force=True,
                           prompt=lambda m: pytest.fail("prompted")) == "deleted"
        assert session.commands == ["rm -rf /var/opt/example.com"]

    def test_prompt_names_path_and_host(self):
        asked = []
        session = FakeSession("deploy@old")
        delete_site(session, "example.com", SITE, prompt=lambda m: asked.append(m) or True)
        assert asked == ["Delete source directory /var/opt/example.com on deploy@old? [y/N]: "]
        assert session.commands == ["rm -rf /var/opt/example.com"]

    def test_declined(self):
        session = FakeSession("old")
        with pytest.raises(UserDeclined):
            delete_site(session, "example.com", SITE, prompt=lambda m: False)
        assert session.commands == []

    def test_dry_run(self):
        session = FakeSession("old")
        assert delete_site(session, "example.com", SITE, force=True, dry_run=True) == "dry-run"
        assert session.commands == []

    def test_dry_run_without_force_does_not_prompt(self, caplog):
        caplog.set_level(logging.INFO)
        session = FakeSession("old")
        result = delete_site(session, "example.com", SITE, prompt=lambda m: pytest.fail("prompted"), dry_run=True)
        assert result == "dry-run"
        assert f"would prompt to delete {SITE} on old" in caplog.text

    def test_rm_failure(self):
        session = FakeSession("old", lambda host, c: failed(stderr="Permission denied"))
        with pytest.raises(CommandError):
            delete_site(session, "example.com", SITE, force=True)

    def test_local_delete_on_disk(self, tmp_path):
        site = tmp_path / "example.com"
        site.mkdir()
        delete_site(LocalSession(), "example.com", str(site), force=True)
        assert not os.path.exists(site)
