import asyncio
import os
import tempfile
from pathlib import Path

from shared.clients.storage.StorageClientInterface import StorageClientInterface
from shared.errors.IndexErrors import StorageError, StorageNotFound
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class StorageClientLocal(StorageClientInterface):
    """Stores blobs as files below STORAGE_LOCAL_ROOT_DIR."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._root_dir: Path = self.get_config_val("ROOT_DIR", default=None, val_type="path")

    def _get_engine_name(self) -> str:
        return "Local"

    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="ROOT_DIR", val_type="path", default=None),
        ]

    def _resolve(self, path: str) -> Path:
        """Map a logical path onto a file below the root directory.

        Raises:
            StorageError: If the path escapes the root directory.
        """
        root = self._root_dir.resolve()
        target = (root / path).resolve()
        if target != root and root not in target.parents:
            raise StorageError(f"Path '{path}' is outside of the storage root '{root}'.")
        return target

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_read(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except FileNotFoundError as exc:
            raise StorageNotFound(f"No blob at '{target}'.") from exc
        except OSError as exc:
            raise StorageError(f"Failed to read '{target}': {exc}") from exc

    async def do_write(self, path: str, data: bytes) -> None:
        target = self._resolve(path)
        try:
            await asyncio.to_thread(self._write_atomic, target, data)
        except OSError as exc:
            raise StorageError(f"Failed to write '{target}': {exc}") from exc
        self.logging.debug("Wrote %d bytes to %s", len(data), target)

    @staticmethod
    def _write_atomic(target: Path, data: bytes) -> None:
        """Write to a temporary sibling file, then swap it into place."""
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as tmp_file:
                tmp_file.write(data)
                tmp_file.flush()
                os.fsync(tmp_file.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            # never leave the temporary file behind
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
