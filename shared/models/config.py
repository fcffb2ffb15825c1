from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from shared.helper.HelperConfig import HelperConfig


class EnvConfig(BaseModel):
    """
    Represents a single configuration parameter required for a env setting.

    Attributes:
        env_key (str): The key/name of the environment variable to read.
        val_type (str): The expected type of the environment variable's value. Supported types are "string", "number", "bool", and "list".
        default (str | int | float | bool | list | None): An optional default value if the environment variable is not set. If None, the variable is required and an error will be raised if it is not set.
    """

    env_key: str
    val_type: str
    default: str | int | float | bool | list | None = None


class IndexSettings(BaseModel):
    """
    Immutable configuration of the note index, passed to the index services at construction.

    Attributes:
        max_results (int): Default upper bound of similarity results per query.
        min_similarity (float): Default similarity threshold of a query.
        max_error_logs (int): Capacity of the diagnostic error history.
        embed_max_chars (int): Character budget note content is truncated to before embedding.
        provider_timeout (float): Seconds before a provider call is abandoned.
        query_bootstrap (str): "empty" indexes a queried note that has no embedding yet and returns no
            results for that call, "block" indexes it and then ranks.
        store_path (str): Path of the durable embedding blob inside the storage backend.
        reindex_on_startup (bool): Whether the API runs an incremental reindex when it boots.
    """

    model_config = ConfigDict(frozen=True)

    max_results: int = Field(default=5, gt=0)
    min_similarity: float = Field(default=0.75, ge=-1.0, le=1.0)
    max_error_logs: int = Field(default=50, gt=0)
    embed_max_chars: int = Field(default=8000, gt=0)
    provider_timeout: float = Field(default=60.0, gt=0)
    query_bootstrap: Literal["empty", "block"] = "empty"
    store_path: str = "embeddings.json"
    reindex_on_startup: bool = True

    @classmethod
    def from_helper_config(cls, helper_config: HelperConfig) -> "IndexSettings":
        """Build the settings from INDEX_* environment variables.

        Args:
            helper_config (HelperConfig): The configuration helper to read from.

        Returns:
            IndexSettings: The validated settings.

        Raises:
            ValueError: If a variable cannot be parsed or fails validation.
        """
        defaults = cls()
        return cls(
            max_results=helper_config.get_number_val("INDEX_MAX_RESULTS", default=defaults.max_results),
            min_similarity=helper_config.get_number_val("INDEX_MIN_SIMILARITY", default=defaults.min_similarity),
            max_error_logs=helper_config.get_number_val("INDEX_MAX_ERROR_LOGS", default=defaults.max_error_logs),
            embed_max_chars=helper_config.get_number_val("INDEX_EMBED_MAX_CHARS", default=defaults.embed_max_chars),
            provider_timeout=helper_config.get_number_val("INDEX_PROVIDER_TIMEOUT", default=defaults.provider_timeout),
            query_bootstrap=helper_config.get_string_val("INDEX_QUERY_BOOTSTRAP", default=defaults.query_bootstrap).lower(),
            store_path=helper_config.get_string_val("INDEX_STORE_PATH", default=defaults.store_path),
            reindex_on_startup=helper_config.get_bool_val("INDEX_REINDEX_ON_STARTUP", default=defaults.reindex_on_startup),
        )
