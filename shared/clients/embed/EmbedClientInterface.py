from abc import abstractmethod

import httpx
from shared.clients.ClientInterface import ClientInterface
from shared.errors.IndexErrors import (
    EmptyInput,
    ProviderRateLimited,
    ProviderServerError,
    ProviderTimeout,
    ProviderUnauthorized,
    ProviderUnknown,
)
from shared.helper.HelperConfig import HelperConfig


class EmbedClientInterface(ClientInterface):
    """Embedding provider client: text in, fixed-length vector out.

    Translates every provider failure into the ProviderError taxonomy so
    nothing httpx or backend specific reaches the index services.
    """

    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)

        # model config, shared by all engines
        self.embed_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_MODEL", default=self._get_default_model())

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "embed"

    @abstractmethod
    def _get_default_model(self) -> str:
        """
        Returns the model used when EMBED_MODEL is not set.
        """
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def get_endpoint_embedding(self) -> str:
        """
        Returns the endpoint path for embedding requests.

        Returns:
            str: The endpoint path for embedding requests (e.g. "/api/embed")
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_embed_payload(self, texts: list[str]) -> dict:
        """Build the backend-specific request body for an embedding request.

        Args:
            texts (list[str]): The texts to embed.

        Returns:
            dict: JSON-serialisable request body (e.g. {"model": "...", "input": [...]}).
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Extract embedding vectors from a raw embedding API response.

        Args:
            response_data (dict): The parsed JSON response body.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the input texts.

        Raises:
            ValueError: If the response format is invalid or embeddings are empty.
        """
        pass

    def _raise_for_provider_status(self, response: httpx.Response) -> None:
        """Map a non-200 provider response onto the ProviderError taxonomy.

        Args:
            response (httpx.Response): The provider response.

        Raises:
            ProviderUnauthorized: On 401/403.
            ProviderRateLimited: On 429.
            ProviderServerError: On 5xx.
            ProviderUnknown: On any other non-200 status.
        """
        status = response.status_code
        if status == 200:
            return
        self.logging.error(
            "Embedding request to %s failed: status %d, body: %s",
            self.get_engine_name(),
            status,
            response.text[:200],
        )
        if status in (401, 403):
            raise ProviderUnauthorized(
                f"Invalid {self._get_engine_name()} API key. Please check your settings.", status_code=status
            )
        if status == 429:
            raise ProviderRateLimited(
                f"{self._get_engine_name()} API rate limit exceeded. Please try again later.", status_code=status
            )
        if status >= 500:
            raise ProviderServerError(
                f"{self._get_engine_name()} server error. Please try again later.", status_code=status
            )
        raise ProviderUnknown(f"Embedding request failed with status {status}.", status_code=status)

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_embed(self, texts: list[str] | str) -> list[list[float]]:
        """Send an embedding request and return the extracted vectors.

        Args:
            texts (list[str] | str): One or more texts to embed.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the inputs.

        Raises:
            ProviderError: If the request fails, times out or returns no usable embeddings.
        """
        texts = [texts] if isinstance(texts, str) else texts
        body = self.get_embed_payload(texts)
        try:
            response = await self.do_request(method="POST", endpoint=self.get_endpoint_embedding(), json=body)
        except httpx.TimeoutException as exc:
            raise ProviderTimeout(f"{self._get_engine_name()} did not answer within {self.timeout}s.") from exc
        except httpx.HTTPError as exc:
            raise ProviderUnknown(f"Embedding request to {self._get_engine_name()} failed: {exc}") from exc

        self._raise_for_provider_status(response)

        try:
            vectors = self.extract_embeddings_from_response(response.json())
        except ValueError as exc:
            raise ProviderUnknown(f"Invalid embedding response from {self._get_engine_name()}: {exc}") from exc
        if len(vectors) != len(texts):
            raise ProviderUnknown(
                f"{self._get_engine_name()} returned {len(vectors)} embeddings for {len(texts)} inputs."
            )
        return vectors

    async def do_embed_text(self, text: str) -> list[float]:
        """Embed a single text.

        Args:
            text (str): The text to embed. Callers truncate it to the provider budget beforehand.

        Returns:
            list[float]: The embedding vector.

        Raises:
            EmptyInput: If the text is empty or whitespace only. No request is sent.
            ProviderError: If the provider call fails.
        """
        if not text or not text.strip():
            raise EmptyInput("Cannot generate embedding for empty text.")
        self.logging.debug("Generating embedding for text of length %d", len(text))
        vectors = await self.do_embed([text])
        return vectors[0]

