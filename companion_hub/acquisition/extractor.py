"""
Unpacks downloaded app artifacts. Zip archives and the gzip family
(``.tar.gz``, ``.tgz``, plain ``.gz``) are supported; any other file is left
untouched and treated as the final executable.
"""

import gzip
import logging
import shutil
import tarfile
import zipfile
from pathlib import Path

from companion_hub.exceptions import AcquisitionError

log = logging.getLogger(__name__)

ZIP_SUFFIXES = (".zip",)
TAR_GZ_SUFFIXES = (".tar.gz", ".tgz")
GZ_SUFFIXES = (".gz",)


def archive_kind(path: Path) -> str | None:
    """Returns ``"zip"``, ``"tar"``, ``"gz"`` or None for other files."""
    name = Path(path).name.lower()
    if name.endswith(ZIP_SUFFIXES):
        return "zip"
    if name.endswith(TAR_GZ_SUFFIXES):
        return "tar"
    if name.endswith(GZ_SUFFIXES):
        return "gz"
    return None


def is_archive(path: Path) -> bool:
    return archive_kind(path) is not None


def extract_archive(archive_path: Path, destination: Path) -> bool:
    """
    Extracts an archive into a directory. The archive itself is kept so that
    its size can be compared on the next install.

    Returns:
        True if the file was an archive and has been extracted.

    Raises:
        AcquisitionError: If the archive is corrupt or cannot be written out.
    """
    archive_path, destination = Path(archive_path), Path(destination)
    kind = archive_kind(archive_path)
    if kind is None:
        return False

    log.debug(f"Extracting '{archive_path.name}' ({kind}) into '{destination}'.")
    try:
        if kind == "zip":
            _extract_zip(archive_path, destination)
        elif kind == "tar":
            with tarfile.open(archive_path, "r:gz") as tar:
                if hasattr(tarfile, "data_filter"):
                    tar.extractall(destination, filter="data")
                else:
                    tar.extractall(destination)  # noqa: S202
        else:
            target = destination / archive_path.name[: -len(".gz")]
            with gzip.open(archive_path, "rb") as src, open(target, "wb") as dst:
                shutil.copyfileobj(src, dst)
    except (
        zipfile.BadZipFile,
        tarfile.TarError,
        gzip.BadGzipFile,
        OSError,
        EOFError,
        # zipfile: unsupported compression method or encrypted member
        NotImplementedError,
        RuntimeError,
        ValueError,
    ) as e:
        raise AcquisitionError(
            f"Failed to extract '{archive_path.name}': {e}"
        ) from e
    return True


def _extract_zip(archive_path: Path, destination: Path) -> None:
    with zipfile.ZipFile(archive_path) as archive:
        for member in archive.infolist():
            extracted = Path(archive.extract(member, destination))
            # Restore POSIX permission bits stored by zip tools on Unix.
            mode = (member.external_attr >> 16) & 0o777
            if mode and not member.is_dir():
                extracted.chmod(mode)
