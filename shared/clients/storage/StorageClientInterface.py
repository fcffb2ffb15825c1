from abc import ABC, abstractmethod
from typing import Any

from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class StorageClientInterface(ABC):
    """Byte-addressable durable storage for whole blobs.

    Reads and writes are all-or-nothing from the caller's point of view:
    a failed do_write leaves the previously stored blob intact.
    """

    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config
        self.validate_full_configuration()

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def validate_full_configuration(self) -> None:
        """
        Validates that all required configuration values for the client are set and valid.

        Raises:
            ValueError: If any required configuration value is missing or invalid.
        """
        for config in self._get_required_config():
            _ = self.get_config_val(raw_key=config.env_key, default=config.default, val_type=config.val_type)

    ##########################################
    ################ GETTER ##################
    ##########################################

    def get_engine_name(self) -> str:
        """
        Returns the name of the storage engine in lowercase. E.g. "local"
        """
        return self._get_engine_name().lower()

    @abstractmethod
    def _get_engine_name(self) -> str:
        pass

    @abstractmethod
    def _get_required_config(self) -> list[EnvConfig]:
        """
        Returns all required configurations for the client.

        Returns:
            list[EnvConfig]: A list containing the details of each required configuration key.
        """
        pass

    def get_config_val(self, raw_key: str, default: Any = None, val_type: str = "string") -> Any:
        """
        Retrieves a "STORAGE_<ENGINE>_<KEY>" configuration value.

        Args:
            raw_key (str): The raw configuration key name, e.g. "ROOT_DIR"
            default (Any): The default value to return if the configuration key is not set
            val_type (str): The type of the configuration value ("string", "number", "bool", "path")
        """
        key = f"STORAGE_{self.get_engine_name().upper()}_{raw_key.upper()}"
        if val_type == "string":
            return self._helper_config.get_string_val(key, default=default)
        elif val_type == "number":
            return self._helper_config.get_number_val(key, default=default)
        elif val_type == "bool":
            return self._helper_config.get_bool_val(key, default=default)
        elif val_type == "path":
            return self._helper_config.get_path_val(key, default=default)
        else:
            raise ValueError(f"Unsupported config value type '{val_type}' for env key '{raw_key}' in storage client '{self.get_engine_name()}'.")

    ##########################################
    ############### REQUESTS #################
    ##########################################

    @abstractmethod
    async def do_read(self, path: str) -> bytes:
        """Read a whole blob.

        Args:
            path (str): Logical path of the blob.

        Returns:
            bytes: The stored bytes.

        Raises:
            StorageNotFound: If no blob exists at the path.
            StorageError: If the storage cannot be read.
        """
        pass

    @abstractmethod
    async def do_write(self, path: str, data: bytes) -> None:
        """Replace a whole blob.

        Args:
            path (str): Logical path of the blob.
            data (bytes): The new content.

        Raises:
            StorageError: If the blob cannot be written. The old blob stays intact.
        """
        pass
