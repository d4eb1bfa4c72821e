import os
import subprocess
from typing import Dict, List, Optional

from resotoaurora.error import ProvisionError
from resotoaurora.logger import log


def run_hooks(commands: List[str], environment: Dict[str, str], timeout: Optional[int] = None) -> None:
    """
    Run shell commands one after the other. The environment is added to the environment of this process.
    The first failing command stops the execution.
    """
    env = {**os.environ, **environment}
    for num, command in enumerate(commands, start=1):
        log.info(f"Running hook {num}/{len(commands)}: {command}")
        try:
            process = subprocess.run(
                command, shell=True, env=env, timeout=timeout, capture_output=True, text=True, check=False
            )
        except subprocess.TimeoutExpired as e:
            raise ProvisionError(f"Hook {command} did not finish within {timeout} seconds") from e
        for line in process.stdout.splitlines():
            log.info(f"[hook] {line}")
        for line in process.stderr.splitlines():
            log.warning(f"[hook] {line}")
        if process.returncode != 0:
            raise ProvisionError(f"Hook {command} failed with exit code {process.returncode}")
