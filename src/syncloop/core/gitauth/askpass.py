"""
SSH key passphrase delivery.

ssh reads key passphrases from a terminal or from an SSH_ASKPASS program.
Git subprocesses have no terminal, so encrypted keys are unlocked through a
small helper script that echoes the passphrase from the environment of the
calling process. The script itself contains no secret.
"""

from __future__ import annotations

import atexit
import os
import shutil
import tempfile
import threading
from pathlib import Path

PASSPHRASE_ENV = "SYNCLOOP_SSH_PASSPHRASE"

_HELPER_SCRIPT = f"""#!/bin/sh
printf '%s\\n' "${PASSPHRASE_ENV}"
"""

_helper_path: Path | None = None
_helper_lock = threading.Lock()


def askpass_helper_path() -> Path:
    """
    Return the path of the askpass helper, creating it on first use.

    The helper lives in a private temporary directory that is removed when
    the process exits.
    """
    global _helper_path
    with _helper_lock:
        if _helper_path is None or not _helper_path.is_file():
            helper_dir = Path(tempfile.mkdtemp(prefix="syncloop_askpass_"))
            atexit.register(shutil.rmtree, helper_dir, ignore_errors=True)
            path = helper_dir / "askpass.sh"
            path.write_text(_HELPER_SCRIPT)
            path.chmod(0o700)
            _helper_path = path
        return _helper_path


def askpass_env(passphrase: str) -> dict[str, str]:
    """
    Environment variables that make ssh read a key passphrase from the helper.

    SSH_ASKPASS_REQUIRE=force makes ssh use the helper even without a
    terminal or DISPLAY (OpenSSH 8.4+); DISPLAY is set for older clients.
    """
    env = {
        "SSH_ASKPASS": str(askpass_helper_path()),
        "SSH_ASKPASS_REQUIRE": "force",
        PASSPHRASE_ENV: passphrase,
    }
    if not os.environ.get("DISPLAY"):
        env["DISPLAY"] = ":0"
    return env
