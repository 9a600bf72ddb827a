"""Secret injection from a 1Password template, with hot reload.

BEACON_ENV_OP_FILE points at an ``op inject`` template. It is rendered into
os.environ once at startup, then re-rendered whenever the file changes. The
Supabase key is read from the environment per query, so a rotated key is
picked up without a restart.

Note: This module uses standard logging, not otel.get_logger(), because
it runs BEFORE OpenTelemetry is initialized.
"""

import logging
import os
import subprocess
import threading
from pathlib import Path

from watchfiles import watch

log = logging.getLogger(__name__)

DEFAULT_ENV_OP_FILE = "/etc/beacon/.env.op"


def env_op_file() -> Path:
    return Path(os.environ.get("BEACON_ENV_OP_FILE", DEFAULT_ENV_OP_FILE))


def parse_env_lines(text: str) -> dict[str, str]:
    """KEY=value lines, comments skipped, surrounding quotes stripped."""
    values = {}
    for line in text.splitlines():
        line = line.strip()
        if "=" in line and not line.startswith("#"):
            key, value = line.split("=", 1)
            values[key.strip()] = value.strip().strip('"').strip("'")
    return values


def inject_env(path: Path | None = None) -> bool:
    """Run op inject and update os.environ with the results.

    Returns True if successful, False otherwise.
    """
    path = path or env_op_file()
    if not path.exists():
        log.warning(f"{path} not found, using the existing environment")
        return False

    try:
        result = subprocess.run(
            ["op", "inject", "-i", str(path)],
            capture_output=True,
            text=True,
            timeout=30,
        )
    except subprocess.TimeoutExpired:
        log.error("op inject timed out")
        return False
    except FileNotFoundError:
        log.error("'op' command not found - is 1Password CLI installed?")
        return False

    if result.returncode != 0:
        log.error(f"op inject failed: {result.stderr}")
        return False

    values = parse_env_lines(result.stdout)
    os.environ.update(values)
    log.info(f"Injected {len(values)} environment variables from {path}")
    return True


def _watch_env_file(path: Path, stop_event: threading.Event | None = None):
    """Background thread that re-injects whenever the template changes."""
    try:
        for _changes in watch(path, stop_event=stop_event):
            log.info(f"Detected change in {path}, re-injecting...")
            inject_env(path)
    except OSError as e:
        log.error(f"Env watcher stopped: {e}")


def start_env_watcher(path: Path, stop_event: threading.Event | None = None) -> threading.Thread:
    thread = threading.Thread(target=_watch_env_file, args=(path, stop_event), daemon=True, name="env-watcher")
    thread.start()
    log.info(f"Watching {path} for changes")
    return thread


def init_env() -> threading.Thread | None:
    """Inject once, then watch for changes if the template exists."""
    path = env_op_file()
    if inject_env(path):
        return start_env_watcher(path)
    return None
