"""
Job launchers.

A launcher starts the worker for a job token without waiting for it. Which
launchers are usable is decided once, by select_launchers() probing each
launcher's available(), and the dispatcher tries the selected ones in order.
- ProcessLauncher: a detached Python process running a throwaway bootstrap script
- LoopbackLauncher: a fire-and-forget POST to this service's own worker endpoint
- ThreadLauncher: a daemon thread in the current process
"""

from __future__ import annotations

import json
import os
import socket
import subprocess
import sys
import tempfile
import threading
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlsplit

import httpx

from polytrans.config import get_background_setting
from polytrans.logger import get_logger

logger = get_logger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
WORKER_PATH = "/internal/jobs/run"
SECRET_HEADER = "X-Polytrans-BG"
READ_TIMEOUT = 0.1
CONNECT_TIMEOUT = 0.5

BOOTSTRAP_TEMPLATE = """import os
import sys

try:
    os.remove(__file__)
except OSError:
    pass

sys.path.insert(0, {project_root!r})

from polytrans.jobs.worker import run_token

sys.exit(0 if run_token({token!r}, db_file={db_file!r}) else 1)
"""


class JobLauncher(ABC):
    """Starts a worker for a token."""

    name: str = ""

    @abstractmethod
    def available(self) -> bool:
        """Whether this mechanism can be used in the current environment."""

    @abstractmethod
    def launch(self, token: str) -> bool:
        """Start the worker for a token without waiting for it to finish."""


class ProcessLauncher(JobLauncher):

    name = "process"

    def __init__(self, db_file: Callable[[], Optional[str]], enabled: bool = True,
                 python: Optional[str] = None, project_root: Path = PROJECT_ROOT):
        self._db_file = db_file
        self.enabled = enabled
        self.python = python or sys.executable
        self.project_root = project_root

    def available(self) -> bool:
        return bool(self.enabled and self.python and os.access(self.python, os.X_OK))

    def bootstrap_script(self, token: str) -> str:
        return BOOTSTRAP_TEMPLATE.format(
            project_root=str(self.project_root),
            token=token,
            db_file=self._db_file(),
        )

    def launch(self, token: str) -> bool:
        with tempfile.NamedTemporaryFile("w", suffix=".py", prefix="polytrans_bg_", delete=False,
                                         encoding="utf-8") as handle:
            handle.write(self.bootstrap_script(token))
            script_path = handle.name

        try:
            subprocess.Popen(
                [self.python, script_path],
                cwd=str(self.project_root),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                close_fds=True,
                start_new_session=True,
            )
        except OSError as e:
            logger.warning(f"Process launch failed for job {token}: {e}")
            os.unlink(script_path)
            return False
        logger.debug(f"Spawned worker process for job {token}")
        return True


class LoopbackLauncher(JobLauncher):
    """
    Fire-and-forget POST to the worker endpoint of this service.

    The request is sent and the response is not awaited: a read timeout after
    the body went out counts as a successful launch. Three mechanisms are tried
    in order: httpx, urllib, then a raw socket write.
    """

    name = "loopback"

    def __init__(self, base_url: str, secret: str, read_timeout: float = READ_TIMEOUT,
                 connect_timeout: float = CONNECT_TIMEOUT):
        self.url = base_url.rstrip("/") + WORKER_PATH
        self.secret = secret
        self.read_timeout = read_timeout
        self.connect_timeout = connect_timeout

    def available(self) -> bool:
        return bool(self.secret) and urlsplit(self.url).scheme in ("http", "https")

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json", SECRET_HEADER: self.secret}

    def launch(self, token: str) -> bool:
        body = json.dumps({"token": token}).encode("utf-8")
        for mechanism in (self._send_httpx, self._send_urllib, self._send_socket):
            try:
                if mechanism(body):
                    logger.debug(f"Loopback launch of job {token} via {mechanism.__name__}")
                    return True
            except (httpx.HTTPError, OSError, ValueError) as e:
                logger.warning(f"Loopback {mechanism.__name__} failed for job {token}: {e}")
        return False

    def _send_httpx(self, body: bytes) -> bool:
        timeout = httpx.Timeout(self.read_timeout, connect=self.connect_timeout)
        try:
            response = httpx.post(self.url, content=body, headers=self._headers, timeout=timeout)
        except httpx.ReadTimeout:
            return True
        return response.status_code < 400

    def _send_urllib(self, body: bytes) -> bool:
        request = urllib.request.Request(self.url, data=body, headers=self._headers, method="POST")
        try:
            with urllib.request.urlopen(request, timeout=self.read_timeout) as response:
                return response.status < 400
        except urllib.error.HTTPError as e:
            logger.warning(f"Loopback worker endpoint answered {e.code}")
            return False
        except (socket.timeout, TimeoutError):
            return True

    def _send_socket(self, body: bytes) -> bool:
        parts = urlsplit(self.url)
        if parts.scheme != "http":
            return False
        host = parts.hostname or "127.0.0.1"
        port = parts.port or 80
        headers = "".join(f"{name}: {value}\r\n" for name, value in self._headers.items())
        request = (
            f"POST {parts.path or '/'} HTTP/1.1\r\n"
            f"Host: {host}:{port}\r\n"
            f"{headers}"
            f"Content-Length: {len(body)}\r\n"
            "Connection: close\r\n\r\n"
        ).encode("utf-8") + body
        with socket.create_connection((host, port), timeout=self.connect_timeout) as sock:
            sock.sendall(request)
        return True


class ThreadLauncher(JobLauncher):
    """Runs the worker on a daemon thread; only survives as long as this process."""

    name = "thread"

    def __init__(self, run: Callable[[str], Any]):
        self._run = run

    def available(self) -> bool:
        return True

    def launch(self, token: str) -> bool:
        thread = threading.Thread(target=self._run, args=(token,), name=f"polytrans-job-{token[:8]}", daemon=True)
        thread.start()
        return True


def select_launchers(config: Dict[str, Any], store_shared: bool, db_file: Callable[[], Optional[str]],
                     run_inline: Callable[[str], Any]) -> List[JobLauncher]:
    """
    Probe the launch mechanisms once and return the usable ones in preference order.

    Out-of-process launchers need a job store other processes can read; with an
    in-process store only the thread launcher is selected.
    """
    candidates: List[JobLauncher] = []
    if store_shared:
        candidates.append(ProcessLauncher(
            db_file=db_file,
            enabled=bool(get_background_setting(config, "allow_process_spawn")),
        ))
        candidates.append(LoopbackLauncher(
            base_url=get_background_setting(config, "loopback_url"),
            secret=get_background_setting(config, "loopback_secret"),
        ))
    candidates.append(ThreadLauncher(run_inline))

    selected = [launcher for launcher in candidates if launcher.available()]
    logger.info(f"Background job launchers: {', '.join(launcher.name for launcher in selected)}")
    return selected
