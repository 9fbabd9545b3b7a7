"""
Background download and staging of a new release.

The foreground CLI only calls ``spawn_background_fetch``: it starts a detached
worker process (``_fetch-update``) and returns without waiting. The worker runs
``run_fetch``, which downloads the archive, extracts it into
``versions/v<version>`` and records the pending-update marker as its very last
step. Any failure leaves no marker behind.
"""

from __future__ import annotations

import http.client
import logging
import os
import shutil
import subprocess
import sys
import tarfile
import urllib.error
import urllib.parse
import urllib.request
from pathlib import Path, PurePosixPath

from .common import SKIP_UPDATE_ENV, UpdateError
from .layout import HOME_ENV, InstallationLayout
from .release_source import USER_AGENT
from .state_store import PendingUpdate, VersionStore
from .versioning import compare_versions

logger = logging.getLogger(__name__)

WORKER_COMMAND = "_fetch-update"
DEFAULT_MAX_REDIRECTS = 5
DEFAULT_TIMEOUT = 60
REDIRECT_CODES = {301, 302, 303, 307, 308}


class DownloadError(UpdateError):
    """Raised when a release archive cannot be downloaded."""
    pass


class ExtractError(UpdateError):
    """Raised when a release archive cannot be extracted."""
    pass


class _NoRedirectHandler(urllib.request.HTTPRedirectHandler):
    """Surface redirects as HTTPError so that the hop count stays under our control."""

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        return None


def _check_scheme(url: str) -> None:
    if urllib.parse.urlsplit(url).scheme != "https":
        raise DownloadError(f"Refusing non-https download URL: {url}")


def download_file(
    url: str,
    dest: Path,
    timeout: float = DEFAULT_TIMEOUT,
    max_redirects: int = DEFAULT_MAX_REDIRECTS,
    opener: urllib.request.OpenerDirector | None = None,
) -> None:
    """
    Download ``url`` to ``dest``, following at most ``max_redirects`` redirects.

    Args:
        url: Archive URL (https only)
        dest: Destination file
        timeout: Per-request timeout in seconds
        max_redirects: Redirect hops allowed before giving up
        opener: URL opener (defaults to one that does not follow redirects)

    Raises:
        DownloadError: On network errors, error statuses or too many redirects
    """
    opener = opener or urllib.request.build_opener(_NoRedirectHandler)

    for _hop in range(max_redirects + 1):
        _check_scheme(url)
        req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
        try:
            response = opener.open(req, timeout=timeout)
        except urllib.error.HTTPError as e:
            location = e.headers.get("Location") if e.headers else None
            if e.code in REDIRECT_CODES and location:
                url = urllib.parse.urljoin(url, location)
                logger.debug(f"Redirected ({e.code}) to {url}")
                continue
            raise DownloadError(f"Download failed with HTTP {e.code}: {url}") from e
        except (urllib.error.URLError, OSError, http.client.HTTPException) as e:
            raise DownloadError(f"Download failed: {e}") from e

        # IncompleteRead and friends are HTTPException, not OSError
        try:
            with response, open(dest, "wb") as f:
                shutil.copyfileobj(response, f)
        except (OSError, http.client.HTTPException) as e:
            dest.unlink(missing_ok=True)
            raise DownloadError(f"Download interrupted: {e}") from e
        return

    raise DownloadError(f"Too many redirects (more than {max_redirects})")


def _strip_first_component(name: str) -> str:
    parts = [p for p in PurePosixPath(name).parts if p not in ("", ".")]
    return "/".join(parts[1:])


def _safe_extractall(tf: tarfile.TarFile, dest_dir: Path, members: list[tarfile.TarInfo]) -> None:
    """Extract members, using the 'data' filter where the interpreter has it."""
    if hasattr(tarfile, "data_filter"):
        tf.extractall(dest_dir, members=members, filter="data")
    else:
        tf.extractall(dest_dir, members=members)


def extract_archive(archive_path: Path, dest_dir: Path) -> None:
    """
    Extract a .tar.gz release into ``dest_dir``, dropping the top-level directory.

    Equivalent to ``tar -xzf archive -C dest --strip-components=1``, but
    refuses members that would land outside ``dest_dir``.

    Raises:
        ExtractError: If the archive is corrupt or unsafe
    """
    root = os.path.realpath(dest_dir)
    try:
        with tarfile.open(archive_path, "r:gz") as tf:
            members = []
            for member in tf.getmembers():
                stripped = _strip_first_component(member.name)
                if not stripped:
                    continue
                if not (member.isfile() or member.isdir() or member.issym() or member.islnk()):
                    continue

                target = os.path.realpath(os.path.join(root, stripped))
                if target != root and not target.startswith(root + os.sep):
                    raise ExtractError(f"Refusing to extract '{member.name}': path traversal detected")

                if member.issym():
                    link_target = os.path.realpath(
                        os.path.join(os.path.dirname(target), member.linkname)
                    )
                    if link_target != root and not link_target.startswith(root + os.sep):
                        raise ExtractError(f"Refusing to extract '{member.name}': link escapes archive")

                member.name = stripped
                if member.islnk():
                    member.linkname = _strip_first_component(member.linkname)
                members.append(member)

            _safe_extractall(tf, dest_dir, members)
    except (tarfile.TarError, EOFError, OSError) as e:
        raise ExtractError(f"Failed to extract archive: {e}") from e


def stage_release(archive_path: Path, layout: InstallationLayout, version: str) -> Path:
    """
    Extract a release archive into its final ``versions/`` directory.

    Extraction happens in a hidden staging directory that is renamed into
    place only once complete, so ``versions/v<version>`` is never partial.

    Returns:
        Path of the extracted release

    Raises:
        ExtractError: If extraction fails or the release has no executable
    """
    final_dir = layout.version_dir(version)
    staging = layout.staging_dir(version, os.getpid())
    layout.versions_dir.mkdir(parents=True, exist_ok=True)
    shutil.rmtree(staging, ignore_errors=True)
    staging.mkdir()

    try:
        extract_archive(archive_path, staging)
        executable = staging / "bin" / layout.binary_name
        if not executable.is_file():
            raise ExtractError(f"Release archive has no bin/{layout.binary_name}")

        if final_dir.is_dir():
            # Another worker already staged the same release
            logger.debug(f"{final_dir} already present, keeping it")
            shutil.rmtree(staging, ignore_errors=True)
        else:
            os.rename(staging, final_dir)
    except OSError as e:
        shutil.rmtree(staging, ignore_errors=True)
        raise ExtractError(f"Failed to stage release: {e}") from e
    except ExtractError:
        shutil.rmtree(staging, ignore_errors=True)
        raise

    return final_dir


def run_fetch(
    url: str,
    version: str,
    layout: InstallationLayout,
    store: VersionStore | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    max_redirects: int = DEFAULT_MAX_REDIRECTS,
    opener: urllib.request.OpenerDirector | None = None,
) -> bool:
    """
    Download, extract and mark a release as pending.

    Args:
        url: Archive URL
        version: Release version
        layout: Installation layout
        store: Version store (defaults to the layout's state files)
        timeout: Download timeout in seconds
        max_redirects: Redirect hops allowed
        opener: URL opener override

    Returns:
        True if the release is staged and the marker written
    """
    store = store or VersionStore.for_layout(layout)
    version = version.lstrip("vV")
    archive = layout.archive_path(version, owner=os.getpid())

    try:
        try:
            layout.updates_dir.mkdir(parents=True, exist_ok=True)
            download_file(url, archive, timeout=timeout, max_redirects=max_redirects, opener=opener)
            release_dir = stage_release(archive, layout, version)
        finally:
            archive.unlink(missing_ok=True)
        store.save_pending(PendingUpdate(version=version, path=str(release_dir)))
    except (UpdateError, OSError) as e:
        logger.debug(f"Background fetch of v{version} aborted: {e}")
        return False

    logger.info(f"Staged v{version} at {release_dir}")
    return True


def build_worker_command(url: str, version: str) -> list[str]:
    """Command line that runs the fetch worker with the current executable."""
    if getattr(sys, "frozen", False):
        return [sys.executable, WORKER_COMMAND, url, version]
    return [sys.executable, "-m", "ethos_update", WORKER_COMMAND, url, version]


def spawn_background_fetch(
    url: str,
    version: str,
    layout: InstallationLayout,
    store: VersionStore | None = None,
) -> bool:
    """
    Start the fetch worker detached from this process and return immediately.

    The worker gets its own session (or process group on Windows) and no
    stdio, so it outlives this process and cannot block its output. Nothing
    is awaited and no error travels back.

    Args:
        url: Archive URL
        version: Release version
        layout: Installation layout
        store: Version store used to skip already-staged versions

    Returns:
        True if a worker was started
    """
    store = store or VersionStore.for_layout(layout)
    pending = store.load_pending()
    if pending is not None and compare_versions(pending.version, version) == 0:
        logger.debug(f"v{version} already staged, not fetching again")
        return False

    env = dict(os.environ)
    env[SKIP_UPDATE_ENV] = "1"
    env[HOME_ENV] = str(layout.home)

    kwargs: dict = {
        "stdin": subprocess.DEVNULL,
        "stdout": subprocess.DEVNULL,
        "stderr": subprocess.DEVNULL,
        "close_fds": True,
        "env": env,
    }
    if sys.platform == "win32":
        kwargs["creationflags"] = subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP
    else:
        kwargs["start_new_session"] = True

    command = build_worker_command(url, version)
    try:
        subprocess.Popen(command, **kwargs)
    except OSError as e:
        logger.debug(f"Could not start fetch worker: {e}")
        return False

    logger.debug(f"Started fetch worker for v{version}")
    return True
