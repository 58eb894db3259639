"""Unit tests for artifact downloads."""

from __future__ import annotations

import io
import zipfile

import httpx
import pytest

from vaultdb_cli.bootstrap import Artifact, ArtifactDownloader, sha256_file
from vaultdb_cli.errors import BootstrapError, ExternalCallFailure


def zip_bytes(members: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, content in members.items():
            zf.writestr(name, content)
    return buffer.getvalue()


class ArchiveServer:
    """httpx.MockTransport handler serving one archive."""

    def __init__(self, content: bytes, status_code: int = 200):
        self.content = content
        self.status_code = status_code
        self.requests = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests += 1
        return httpx.Response(self.status_code, content=self.content)


@pytest.fixture
def instantclient(tmp_path):
    return Artifact(
        name="instantclient",
        url="https://download.test/instantclient.zip",
        target_dir=tmp_path / "instantclient",
        marker="libclntsh.so",
        strip_top_level=True,
    )


def make_downloader(tmp_path, server) -> ArtifactDownloader:
    return ArtifactDownloader(tmp_path / "downloads", transport=httpx.MockTransport(server))


class TestArtifactDownloader:
    """Tests for ArtifactDownloader."""

    def test_download_and_strip_top_level(self, tmp_path, instantclient):
        """Test the versioned top directory of the archive is dropped."""
        server = ArchiveServer(
            zip_bytes(
                {
                    "instantclient_21_13/libclntsh.so": b"lib",
                    "instantclient_21_13/network/admin/README": b"readme",
                }
            )
        )

        downloaded, path = make_downloader(tmp_path, server).ensure(instantclient)

        assert downloaded is True
        assert path == tmp_path / "instantclient" / "libclntsh.so"
        assert path.read_bytes() == b"lib"
        assert (tmp_path / "instantclient" / "network" / "admin" / "README").exists()
        assert (tmp_path / "downloads" / "instantclient.zip").exists()

    def test_skip_when_installed(self, tmp_path, instantclient):
        instantclient.target_dir.mkdir(parents=True)
        instantclient.installed_path.write_bytes(b"lib")
        server = ArchiveServer(b"")

        downloaded, _ = make_downloader(tmp_path, server).ensure(instantclient)

        assert downloaded is False
        assert server.requests == 0

    def test_http_error(self, tmp_path, instantclient):
        server = ArchiveServer(b"not found", status_code=404)

        with pytest.raises(ExternalCallFailure) as exc_info:
            make_downloader(tmp_path, server).ensure(instantclient)

        assert exc_info.value.status_code == 404
        assert exc_info.value.operation == "download instantclient"

    def test_marker_missing_after_extract(self, tmp_path, instantclient):
        server = ArchiveServer(zip_bytes({"instantclient_21_13/other.so": b"x"}))

        with pytest.raises(ExternalCallFailure, match="libclntsh.so not found"):
            make_downloader(tmp_path, server).ensure(instantclient)

    def test_plugin_archive_without_top_level(self, tmp_path):
        plugin = Artifact(
            name="vault-plugin-database-oracle",
            url="https://releases.test/plugin.zip",
            target_dir=tmp_path / "plugins",
            marker="vault-plugin-database-oracle",
        )
        server = ArchiveServer(zip_bytes({"vault-plugin-database-oracle": b"\x7fELF"}))

        downloaded, path = make_downloader(tmp_path, server).ensure(plugin)

        assert downloaded
        assert path.read_bytes() == b"\x7fELF"

    def test_refuses_path_traversal(self, tmp_path):
        artifact = Artifact(
            name="evil",
            url="https://download.test/evil.zip",
            target_dir=tmp_path / "target",
            marker="ok",
        )
        server = ArchiveServer(zip_bytes({"../escape": b"x"}))

        with pytest.raises(BootstrapError, match="unsafe"):
            make_downloader(tmp_path, server).ensure(artifact)

        assert not (tmp_path / "escape").exists()

    def test_refuses_absolute_member(self, tmp_path):
        """Test an absolute member name never lands outside the target directory."""
        outside = tmp_path / "outside" / "written"
        plugin = Artifact(
            name="vault-plugin-database-oracle",
            url="https://releases.test/plugin.zip",
            target_dir=tmp_path / "plugins",
            marker="vault-plugin-database-oracle",
        )
        server = ArchiveServer(
            zip_bytes({str(outside): b"x", "vault-plugin-database-oracle": b"\x7fELF"})
        )

        with pytest.raises(BootstrapError, match="unsafe"):
            make_downloader(tmp_path, server).ensure(plugin)

        assert not outside.exists()

    def test_download_not_a_zip(self, tmp_path, instantclient):
        """Test an HTML page served with status 200 fails as a dependency error."""
        server = ArchiveServer(b"<html>login</html>")

        with pytest.raises(ExternalCallFailure, match="not a zip archive") as exc_info:
            make_downloader(tmp_path, server).ensure(instantclient)

        assert exc_info.value.operation == "unpack instantclient"


def test_sha256_file(tmp_path):
    path = tmp_path / "plugin"
    path.write_bytes(b"abc")
    assert sha256_file(path) == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
