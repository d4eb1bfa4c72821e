import json
import os
import threading
from typing import Dict, Optional

from attrs import define, field

from resotoaurora.json import from_json, to_json_str
from resotoaurora.logger import log
from resotoaurora.utils import rnd_hex, utc_str


@define
class RandomIdState:
    keepers: Dict[str, str]
    hex: str
    created_at: str = field(factory=utc_str)


@define
class ModuleState:
    random_ids: Dict[str, RandomIdState] = field(factory=dict)


class StateFile:
    """
    Remembers generated values between runs. Without a path the state only lives in memory.
    No locking: only one process should work on the same state file at a time.
    """

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path
        self._lock = threading.RLock()
        self.state = self.__load()

    def __load(self) -> ModuleState:
        if self.path and os.path.isfile(self.path):
            with open(self.path, "r") as f:
                log.debug(f"Loading state from {self.path}")
                return from_json(json.load(f), ModuleState)
        return ModuleState()

    def save(self) -> None:
        if not self.path:
            return
        with self._lock:
            tmp_path = f"{self.path}.tmp"
            with open(tmp_path, "w") as f:
                f.write(to_json_str(self.state))
            os.replace(tmp_path, self.path)

    def random_id(self, key: str, keepers: Dict[str, str], byte_length: int = 8) -> str:
        """
        Return the random id stored for this key, as long as the keepers did not change.
        A change of any keeper creates a new random id.
        """
        with self._lock:
            existing = self.state.random_ids.get(key)
            if existing is not None and existing.keepers == keepers:
                return existing.hex
            if existing is not None:
                log.info(f"Keepers of random id {key} changed: generating a new one")
            generated = RandomIdState(keepers=dict(keepers), hex=rnd_hex(byte_length))
            self.state.random_ids[key] = generated
            self.save()
            return generated.hex

    def peek_random_id(self, key: str, keepers: Dict[str, str]) -> Optional[str]:
        with self._lock:
            existing = self.state.random_ids.get(key)
            return existing.hex if existing is not None and existing.keepers == keepers else None

    def remove_random_id(self, key: str) -> None:
        with self._lock:
            if self.state.random_ids.pop(key, None) is not None:
                self.save()
