import importlib

from shared.helper.HelperConfig import HelperConfig
from shared.clients.storage.StorageClientInterface import StorageClientInterface


class StorageClientManager:
    """
    Manager class to handle the Storage client based on configuration.
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """
        Reads the Storage engine from ENV configuration. Defaults to "local".

        Returns:
            str: The name of the Storage engine, e.g. "Local".
        """
        engine = self.helper_config.get_string_val("STORAGE_ENGINE", default="local")
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> StorageClientInterface:
        """
        Initializes the Storage client based on the engine specified in the configuration.

        Returns:
            StorageClientInterface: An instance of the configured Storage client.

        Raises:
            ValueError: If the engine is unsupported.
        """
        engine = self._get_engine_from_env()
        class_name = f"StorageClient{engine}"
        try:
            module = importlib.import_module(f"shared.clients.storage.{engine.lower()}.{class_name}")
            client_class = getattr(module, class_name)
        except (ImportError, AttributeError) as e:
            raise ValueError(f"Unsupported Storage engine specified: '{engine}'. Error: {e}")

        client = client_class(helper_config=self.helper_config)
        self.logging.debug("Instantiated Storage client for engine: %s", engine)
        return client

    def get_client(self) -> StorageClientInterface:
        """
        Returns the instantiated Storage client.
        """
        return self.client
