# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Sandbox provisioning pipeline.

Turns a remote rootfs archive into a runnable sandbox, in stages::

    clean -> layout -> install-tool -> download -> extract
          -> configure -> launcher -> finalize

Every run starts by deleting the whole base directory, so setup is
always a fresh rebuild and a failed run is retried by running it again.
The completion sentinel is written last, only after every other stage
succeeded.

Progress is reported as ``ProvisionProgress`` updates whose percentage
never decreases within a run.  ``setup()`` runs on the calling thread;
``start()`` runs it on one dedicated background thread and returns a
``ProvisionRun`` with a progress stream and a result future.
"""

from __future__ import annotations

import gzip
import hashlib
import logging
import os
import queue
import shutil
import threading
import time
from collections.abc import Callable, Iterator
from concurrent.futures import Future
from contextlib import ExitStack

import httpx

from pismo.sandbox._extract import extract, make_executable
from pismo.sandbox._launcher import get_launcher_content
from pismo.sandbox.assets import (
    SETUP_SCRIPT_ASSET,
    AssetReader,
    copy_asset,
    host_architecture,
    select_tool_asset,
)
from pismo.sandbox.errors import ProvisionCancelled, ProvisionError
from pismo.sandbox.tar import TarStreamReader
from pismo.sandbox.types import (
    ProvisionProgress,
    ProvisionResult,
    RootLayout,
    SandboxConfig,
    Stage,
)


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProvisionProgress], None]

#: Download progress spans this percentage window.
DOWNLOAD_START_PERCENT = 15
DOWNLOAD_END_PERCENT = 75

_DOWNLOAD_CHUNK = 32768

PROFILE_SCRIPT = """\
#!/bin/sh
if [ ! -f /root/.setup_done ]; then
    echo 'Running first-time setup...'
    [ -f /root/setup.sh ] && /root/setup.sh && touch /root/.setup_done
fi
[ -x /bin/bash ] && [ -z "$BASH_VERSION" ] && exec /bin/bash --login
export PS1='pismo# '
"""


def download_percent(downloaded: int, total: int) -> int:
    """Map bytes transferred onto the download percentage window.

    Returns the window start when *total* is unknown (zero or less).
    """
    if total <= 0:
        return DOWNLOAD_START_PERCENT
    span = DOWNLOAD_END_PERCENT - DOWNLOAD_START_PERCENT
    percent = DOWNLOAD_START_PERCENT + (downloaded * span) // total
    return min(percent, DOWNLOAD_END_PERCENT)


class _ProgressReporter:
    """Forwards progress updates, keeping the percentage monotonic."""

    def __init__(
        self,
        callback: ProgressCallback | None,
        cancel: threading.Event | None,
    ) -> None:
        self._callback = callback
        self._cancel = cancel
        self._percent = 0

    @property
    def percent(self) -> int:
        return self._percent

    @property
    def cancel_event(self) -> threading.Event | None:
        return self._cancel

    def report(self, message: str, percent: int) -> None:
        self._percent = max(self._percent, min(percent, 100))
        if self._callback is not None:
            self._callback(ProvisionProgress(message, self._percent))

    def check_cancelled(self) -> None:
        if self._cancel is not None and self._cancel.is_set():
            raise ProvisionCancelled("Setup cancelled")


class ProvisionRun:
    """Handle for a setup running on a background thread.

    Attributes:
        result: Future resolved with the run's ProvisionResult.
    """

    result: Future[ProvisionResult]

    def __init__(self) -> None:
        self._updates: queue.Queue[ProvisionProgress | None] = queue.Queue()
        self._cancel = threading.Event()

    def progress(self) -> Iterator[ProvisionProgress]:
        """Yield progress updates until the run finishes."""
        while True:
            update = self._updates.get()
            if update is None:
                return
            yield update

    def wait(self, timeout: float | None = None) -> ProvisionResult:
        """Block until the run finishes and return its result."""
        return self.result.result(timeout=timeout)

    def cancel(self) -> None:
        """Request cooperative cancellation."""
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()


class SandboxProvisioner:
    """Builds the sandbox tree at a RootLayout.

    Thread Safety: one setup at a time per instance; a concurrent call
    fails immediately instead of waiting.
    """

    def __init__(
        self,
        layout: RootLayout,
        assets: AssetReader,
        config: SandboxConfig | None = None,
        *,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Initialize the provisioner.

        Args:
            layout: Paths to provision.
            assets: Source of the sandbox tool and first-boot script.
            config: Provisioning settings.  Defaults apply when None.
            http_client: Client for the download.  A client with the
                configured timeouts is created per run when None.
        """
        self._layout = layout
        self._assets = assets
        self._config = config or SandboxConfig()
        self._http_client = http_client
        self._setup_lock = threading.Lock()
        self._archive_digest = ""

    @property
    def layout(self) -> RootLayout:
        return self._layout

    def start(self) -> ProvisionRun:
        """Run setup on a dedicated background thread."""
        run = ProvisionRun()
        future: Future[ProvisionResult] = Future()
        future.set_running_or_notify_cancel()
        run.result = future

        def _run() -> None:
            try:
                future.set_result(
                    self.setup(
                        on_progress=run._updates.put, cancel=run._cancel
                    )
                )
            except Exception as e:
                future.set_exception(e)
            finally:
                # End of the progress stream.
                run._updates.put(None)

        threading.Thread(target=_run, daemon=True, name="pismo-setup").start()
        return run

    def setup_with_callbacks(
        self,
        on_progress: Callable[[str, int], None],
        on_complete: Callable[[bool, str | None], None],
    ) -> None:
        """Run setup, reporting through plain progress/completion callbacks.

        ``on_complete`` is called exactly once.  Both callbacks run on the
        calling thread.
        """
        result = self.setup(
            on_progress=lambda p: on_progress(p.message, p.percent)
        )
        on_complete(result.success, result.error)

    def setup(
        self,
        on_progress: ProgressCallback | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> ProvisionResult:
        """Run the full pipeline on the calling thread.

        Never raises for stage failures; they are returned as a failed
        ProvisionResult.

        Args:
            on_progress: Called with each progress update.
            cancel: Optional event checked between stages, download
                chunks and archive entries.

        Returns:
            Exactly one result per invocation.
        """
        if not self._setup_lock.acquire(blocking=False):
            return ProvisionResult.failed("Setup already in progress")

        reporter = _ProgressReporter(on_progress, cancel)
        self._archive_digest = ""
        start_time = time.time()
        stage: Stage | None = None
        try:
            for stage, message, percent, step in self._stages(reporter):
                reporter.check_cancelled()
                logger.info("Setup stage %s: %s", stage.value, message)
                try:
                    reporter.report(message, percent)
                    step()
                except ProvisionCancelled:
                    raise
                except Exception as e:
                    raise ProvisionError(
                        str(e) or type(e).__name__, stage=stage
                    ) from e
            try:
                reporter.report("Complete!", 100)
            except Exception as e:
                raise ProvisionError(
                    str(e) or type(e).__name__, stage=Stage.FINALIZE
                ) from e
        except ProvisionCancelled as e:
            logger.warning("Setup cancelled during %s", stage)
            return ProvisionResult.failed(str(e), stage=stage, exception=e)
        except ProvisionError as e:
            logger.error(
                "Setup failed at %s (%d%%): %s",
                e.stage.value,
                reporter.percent,
                e,
                exc_info=e.__cause__,
            )
            return ProvisionResult.failed(
                str(e), stage=e.stage, exception=e.__cause__ or e
            )
        finally:
            self._setup_lock.release()

        logger.info("Setup completed in %.2fs", time.time() - start_time)
        return ProvisionResult.ok()

    def _stages(
        self, reporter: _ProgressReporter
    ) -> list[tuple[Stage, str, int, Callable[[], None]]]:
        return [
            (Stage.CLEAN, "Cleaning up...", 2, self._clean),
            (Stage.LAYOUT, "Creating directories...", 5, self._make_layout),
            (Stage.INSTALL_TOOL, "Extracting proot...", 10, self._install),
            (
                Stage.DOWNLOAD,
                "Downloading Alpine Linux...",
                DOWNLOAD_START_PERCENT,
                lambda: self._download(reporter),
            ),
            (
                Stage.EXTRACT,
                "Extracting...",
                78,
                lambda: self._extract(reporter),
            ),
            (Stage.CONFIGURE, "Configuring system...", 85, self._configure),
            (Stage.LAUNCHER, "Creating launcher...", 90, self._launcher),
            (Stage.FINALIZE, "Finalizing...", 95, self._mark_complete),
        ]

    # -- stages ------------------------------------------------------

    def _clean(self) -> None:
        base = self._layout.base
        if base.is_symlink() or base.is_file():
            base.unlink()
        elif base.exists():
            shutil.rmtree(base)

    def _make_layout(self) -> None:
        for path in (
            self._layout.base,
            self._layout.rootfs,
            self._layout.bin_dir,
            self._layout.tmp_dir,
        ):
            path.mkdir(parents=True, exist_ok=True)

    def _install(self) -> None:
        arch = self._config.arch or host_architecture()
        asset = select_tool_asset(arch)
        logger.info("Installing sandbox tool %s for %s", asset, arch)
        copy_asset(self._assets, asset, self._layout.sandbox_binary)
        make_executable(self._layout.sandbox_binary)

    def _download(self, reporter: _ProgressReporter) -> None:
        url = self._config.rootfs_url
        archive = self._layout.archive_path
        digest = hashlib.sha256()
        downloaded = 0

        logger.info("Downloading %s", url)
        with ExitStack() as stack:
            client = self._http_client
            if client is None:
                client = stack.enter_context(
                    httpx.Client(
                        timeout=httpx.Timeout(
                            self._config.read_timeout,
                            connect=self._config.connect_timeout,
                        ),
                        follow_redirects=True,
                    )
                )
            response = stack.enter_context(client.stream("GET", url))
            response.raise_for_status()
            total = _content_length(response)

            with open(archive, "wb") as out:
                # Raw bytes: the archive as served, whatever the
                # transfer encoding.
                for chunk in response.iter_raw(_DOWNLOAD_CHUNK):
                    reporter.check_cancelled()
                    out.write(chunk)
                    digest.update(chunk)
                    downloaded += len(chunk)
                    reporter.report(
                        f"Downloading... {downloaded // 1024}KB",
                        download_percent(downloaded, total),
                    )

        self._archive_digest = digest.hexdigest()
        logger.info(
            "Downloaded %d bytes (sha256=%s)", downloaded, self._archive_digest
        )

        expected = self._config.rootfs_sha256
        if expected and expected.lower() != self._archive_digest:
            raise ValueError(
                f"Checksum mismatch for {url}: expected {expected.lower()}, "
                f"got {self._archive_digest}"
            )

    def _extract(self, reporter: _ProgressReporter) -> None:
        archive = self._layout.archive_path
        with gzip.open(archive, "rb") as stream:
            extract(
                TarStreamReader(stream),
                self._layout.rootfs,
                cancel=reporter.cancel_event,
            )
        archive.unlink()

    def _configure(self) -> None:
        rootfs = self._layout.rootfs

        etc = rootfs / "etc"
        etc.mkdir(parents=True, exist_ok=True)
        resolv = "".join(
            f"nameserver {server}\n" for server in self._config.nameservers
        )
        (etc / "resolv.conf").write_text(resolv)

        root_home = rootfs / "root"
        root_home.mkdir(parents=True, exist_ok=True)
        (root_home / ".profile").write_text(PROFILE_SCRIPT)

        setup_script = root_home / "setup.sh"
        copy_asset(self._assets, SETUP_SCRIPT_ASSET, setup_script)
        make_executable(setup_script)

    def _launcher(self) -> None:
        layout = self._layout
        layout.l2s_dir.mkdir(parents=True, exist_ok=True)
        layout.tmp_dir.mkdir(parents=True, exist_ok=True)

        content = get_launcher_content(
            layout,
            shared_storage=self._config.shared_storage,
            app_data_dir=self._config.resolve_app_data_dir(layout),
            interpreter=self._config.host_shell,
        )
        layout.launcher_script.write_text(content)
        make_executable(layout.launcher_script)
        logger.info("Created launcher script at %s", layout.launcher_script)

    def _mark_complete(self) -> None:
        marker = self._layout.setup_marker
        tmp = marker.with_name(marker.name + ".tmp")
        tmp.write_text(
            f"url={self._config.rootfs_url}\n"
            f"sha256={self._archive_digest}\n"
        )
        os.replace(tmp, marker)


def _content_length(response: httpx.Response) -> int:
    """Declared content length, or 0 when absent or malformed."""
    try:
        return int(response.headers.get("content-length", "0"))
    except ValueError:
        return 0
