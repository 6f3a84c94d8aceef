# utils.py

import logging
import subprocess

logger = logging.getLogger(__name__)


class GitCommandError(Exception):
    def __init__(self, args, returncode, stderr):
        self.command = " ".join(args)
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"Command failed (exit {returncode}): {self.command}\nError: {stderr}")


class GitTimeoutError(GitCommandError):
    def __init__(self, args, timeout):
        super().__init__(args, None, f"timed out after {timeout} seconds")
        self.timeout = timeout


def run_command(args, cwd: str, env: dict = None, timeout: float = None, check: bool = True):
    """
    Run `args` (no shell) in `cwd` and return (returncode, stdout, stderr).

    With `check`, a non-zero exit raises GitCommandError. A timeout always
    raises GitTimeoutError.
    """
    logger.debug(f"Executing command: {' '.join(args)} in {cwd}")
    try:
        result = subprocess.run(
            args,
            cwd=cwd,
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        logger.error(f"Command timed out after {timeout}s: {' '.join(args)}")
        raise GitTimeoutError(args, timeout) from e

    stdout_decoded = result.stdout.strip()
    stderr_decoded = result.stderr.strip()

    if stdout_decoded:
        logger.debug(f"Command stdout: {stdout_decoded}")
    if stderr_decoded:
        logger.debug(f"Command stderr: {stderr_decoded}")

    if check and result.returncode != 0:
        raise GitCommandError(args, result.returncode, stderr_decoded)
    return result.returncode, stdout_decoded, stderr_decoded
