"""Artifact downloads for the Vault container.

The Oracle database plugin and the Oracle Instant Client libraries it links
against are fetched once and unpacked into directories bind-mounted into the
Vault container.
"""

from __future__ import annotations

import hashlib
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

import httpx

from ..errors import BootstrapError, external_call_failure
from ..shared.logging import get_logger

logger = get_logger(__name__)


@dataclass
class Artifact:
    """A zip archive to fetch and unpack."""

    name: str
    url: str
    target_dir: Path
    # File whose presence means the artifact is already installed
    marker: str
    strip_top_level: bool = False

    @property
    def installed_path(self) -> Path:
        return self.target_dir / self.marker


class ArtifactDownloader:
    """Download and unpack artifacts, skipping ones already installed."""

    def __init__(
        self,
        download_dir: Path,
        timeout: float = 120.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize downloader.

        Args:
            download_dir: Where archives are cached
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.download_dir = download_dir
        self.timeout = timeout
        self.transport = transport

    def ensure(self, artifact: Artifact) -> tuple[bool, Path]:
        """Make sure an artifact is unpacked.

        Returns:
            Tuple of (downloaded, installed_path). downloaded is False when the
            artifact was already in place.
        """
        if artifact.installed_path.exists():
            logger.info(
                "artifact_present", artifact=artifact.name, path=str(artifact.installed_path)
            )
            return False, artifact.installed_path

        archive = self.download(artifact)
        self.extract(archive, artifact)
        if not artifact.installed_path.exists():
            raise external_call_failure(
                f"unpack {artifact.name}",
                f"{artifact.marker} not found in {artifact.url}",
            )
        return True, artifact.installed_path

    def download(self, artifact: Artifact) -> Path:
        """Stream an archive to the download cache."""
        self.download_dir.mkdir(parents=True, exist_ok=True)
        archive = self.download_dir / f"{artifact.name}.zip"
        logger.info("artifact_download", artifact=artifact.name, url=artifact.url)
        try:
            with httpx.Client(
                timeout=self.timeout, follow_redirects=True, transport=self.transport
            ) as client:
                with client.stream("GET", artifact.url) as response:
                    if response.status_code != 200:
                        raise external_call_failure(
                            f"download {artifact.name}",
                            artifact.url,
                            status_code=response.status_code,
                        )
                    with open(archive, "wb") as f:
                        for chunk in response.iter_bytes():
                            f.write(chunk)
        except httpx.HTTPError as e:
            raise external_call_failure(f"download {artifact.name}", str(e)) from e
        return archive

    def extract(self, archive: Path, artifact: Artifact) -> list[Path]:
        """Unpack an archive into the artifact's target directory.

        With strip_top_level, a leading directory shared by every member
        (e.g., instantclient_21_13/) is dropped.

        Returns:
            List of extracted file paths.

        Raises:
            ExternalCallFailure: If the download is not a zip archive
            BootstrapError: If a member would land outside the target directory
        """
        artifact.target_dir.mkdir(parents=True, exist_ok=True)
        root = artifact.target_dir.resolve()
        extracted = []
        try:
            zf = zipfile.ZipFile(archive)
        except zipfile.BadZipFile as e:
            raise external_call_failure(
                f"unpack {artifact.name}", f"{artifact.url} is not a zip archive: {e}"
            ) from e
        with zf:
            for info in zf.infolist():
                if info.is_dir():
                    continue
                member = PurePosixPath(info.filename)
                parts = member.parts
                if artifact.strip_top_level and len(parts) > 1:
                    parts = parts[1:]
                target = artifact.target_dir.joinpath(*parts)
                if (
                    member.is_absolute()
                    or ".." in parts
                    or not target.resolve().is_relative_to(root)
                ):
                    raise BootstrapError(
                        f"Refusing unsafe archive member in {artifact.name}: {info.filename}",
                        data={"artifact": artifact.name, "member": info.filename},
                    )
                target.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(info) as src, open(target, "wb") as dst:
                    dst.write(src.read())
                # Preserve the executable bit of the plugin binary
                mode = (info.external_attr >> 16) & 0o777
                if mode:
                    target.chmod(mode)
                extracted.append(target)
        return extracted


def sha256_file(path: Path) -> str:
    """SHA-256 hex digest of a file, as Vault's plugin catalog expects."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(65536), b""):
            digest.update(block)
    return digest.hexdigest()
