from abc import ABC, abstractmethod

from shared.helper.HelperConfig import HelperConfig
from shared.models.note import NoteDocument


class NoteSourceInterface(ABC):
    """Supplies notes (key, current content, current version) to the index."""

    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config

    def get_engine_name(self) -> str:
        return self._get_engine_name().lower()

    @abstractmethod
    def _get_engine_name(self) -> str:
        pass

    @abstractmethod
    async def do_list_keys(self) -> list[str]:
        """Returns the keys of all notes currently in the source, ordered by key.

        Raises:
            SourceError: If the source cannot be listed.
        """
        pass

    @abstractmethod
    async def do_get_note(self, key: str) -> NoteDocument | None:
        """Load a single note.

        Args:
            key (str): The note key.

        Returns:
            NoteDocument | None: The note, or None if it does not exist.

        Raises:
            SourceError: If the note exists but cannot be read.
        """
        pass
