from shared.clients.storage.StorageClientInterface import StorageClientInterface
from shared.errors.IndexErrors import StorageNotFound
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class StorageClientMemory(StorageClientInterface):
    """Process-local blob storage. Nothing survives a restart."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._blobs: dict[str, bytes] = {}

    def _get_engine_name(self) -> str:
        return "Memory"

    def _get_required_config(self) -> list[EnvConfig]:
        return []

    async def do_read(self, path: str) -> bytes:
        if path not in self._blobs:
            raise StorageNotFound(f"No blob at '{path}'.")
        return self._blobs[path]

    async def do_write(self, path: str, data: bytes) -> None:
        self._blobs[path] = bytes(data)
