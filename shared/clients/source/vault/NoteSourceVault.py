import asyncio
from pathlib import Path, PurePosixPath

from shared.clients.source.NoteSourceInterface import NoteSourceInterface
from shared.errors.IndexErrors import SourceError
from shared.helper.HelperConfig import HelperConfig
from shared.models.note import NoteDocument

NOTE_SUFFIX = ".md"


class NoteSourceVault(NoteSourceInterface):
    """Markdown notes below a vault directory (SOURCE_VAULT_ROOT_DIR).

    Keys are POSIX paths relative to the vault root, versions are file
    modification times in milliseconds. Hidden directories such as
    ".obsidian" or ".trash" are ignored.
    """

    def __init__(self, helper_config: HelperConfig, root_dir: Path | None = None):
        super().__init__(helper_config=helper_config)
        self._root_dir = root_dir or helper_config.get_path_val("SOURCE_VAULT_ROOT_DIR", must_exist=True)

    def _get_engine_name(self) -> str:
        return "Vault"

    ##########################################
    ################ HELPERS #################
    ##########################################

    def _resolve(self, key: str) -> Path | None:
        """Map a key onto a markdown file inside the vault, or None if it is not a valid note key."""
        if not key.endswith(NOTE_SUFFIX):
            return None
        relative = PurePosixPath(key)
        if relative.is_absolute() or ".." in relative.parts or self._is_hidden(relative):
            return None
        return self._root_dir.joinpath(*relative.parts)

    @staticmethod
    def _is_hidden(relative: PurePosixPath) -> bool:
        return any(part.startswith(".") for part in relative.parts)

    def _scan_keys(self) -> list[str]:
        keys: list[str] = []
        for path in self._root_dir.rglob(f"*{NOTE_SUFFIX}"):
            relative = PurePosixPath(path.relative_to(self._root_dir).as_posix())
            if self._is_hidden(relative) or not path.is_file():
                continue
            keys.append(str(relative))
        return sorted(keys)

    @staticmethod
    def _read_note(key: str, path: Path) -> NoteDocument | None:
        try:
            stat = path.stat()
            content = path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise SourceError(f"Cannot read note '{key}': {exc}") from exc
        return NoteDocument(key=key, content=content, version=stat.st_mtime_ns // 1_000_000)

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_list_keys(self) -> list[str]:
        try:
            return await asyncio.to_thread(self._scan_keys)
        except OSError as exc:
            raise SourceError(f"Cannot list notes below '{self._root_dir}': {exc}") from exc

    async def do_get_note(self, key: str) -> NoteDocument | None:
        path = self._resolve(key)
        if path is None:
            self.logging.debug("Ignoring non-note key %r", key)
            return None
        return await asyncio.to_thread(self._read_note, key, path)
