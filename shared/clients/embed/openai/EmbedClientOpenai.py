import httpx

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class EmbedClientOpenai(EmbedClientInterface):
    """OpenAI-compatible embeddings backend (api.openai.com or any /v1/embeddings server)."""

    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)
        self._base_url = self.get_config_val("BASE_URL", default="https://api.openai.com", val_type="string")
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "OpenAI"

    def _get_default_model(self) -> str:
        return "text-embedding-ada-002"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default="https://api.openai.com"),
            # the key is mandatory, there is no anonymous access
            EnvConfig(env_key="API_KEY", val_type="string", default=None),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"Authorization": f"Bearer {self._api_key}"}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/v1/models"

    def get_endpoint_embedding(self) -> str:
        return "/v1/embeddings"

    ################ PAYLOAD BUILDER ##################
    def get_embed_payload(self, texts: list[str]) -> dict:
        return {"model": self.embed_model, "input": texts}

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Extract embedding vectors from an OpenAI /v1/embeddings response.

        The "data" items carry an "index" field and are not guaranteed to be
        ordered, so they are sorted back into input order.

        Args:
            response_data (dict): {"data": [{"embedding": [...], "index": 0}, ...]}

        Returns:
            list[list[float]]: Embedding vectors in input order.

        Raises:
            ValueError: If the response does not contain valid embeddings.
        """
        data = response_data.get("data")
        if not data or not isinstance(data, list):
            raise ValueError(
                "OpenAI response does not contain embedding data. "
                f"Response keys: {list(response_data.keys())}"
            )
        try:
            items = sorted(data, key=lambda item: item.get("index", 0))
            embeddings = [item["embedding"] for item in items]
        except (KeyError, TypeError, AttributeError) as exc:
            raise ValueError(f"Malformed OpenAI embedding item: {exc}") from exc
        if not all(embeddings):
            raise ValueError("OpenAI response contains an empty embedding.")
        return embeddings
