from shared.helper.HelperConfig import HelperConfig
from shared.clients.ClientInterface import ClientInterface

# class name prefix per client type, e.g. "rag" + "Qdrant" -> RAGClientQdrant
_CLASS_PREFIXES: dict[str, str] = {
    "content": "ContentClient",
    "embed": "EmbedClient",
    "llm": "LLMClient",
    "rag": "RAGClient",
    "transport": "TransportClient",
}


class ClientManager:
    """
    Instantiates the client of one type for the engine named in {TYPE}_ENGINE.

    The implementation is looked up by convention at
    shared.clients.{type}.{engine}.{Prefix}{Engine}, e.g.
    shared.clients.rag.qdrant.RAGClientQdrant.
    """

    def __init__(self, helper_config: HelperConfig, client_type: str, default_engine: str | None = None):
        if client_type not in _CLASS_PREFIXES:
            raise ValueError(f"Unknown client type '{client_type}'.")
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client_type = client_type
        self.default_engine = default_engine
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """
        Reads the engine of this client type from ENV configuration.

        Returns:
            str: Capitalised engine name (e.g. "Qdrant").

        Raises:
            ValueError: If {TYPE}_ENGINE is not set and there is no default.
        """
        key = f"{self.client_type.upper()}_ENGINE"
        engine = self.helper_config.get_string_val(key, default=self.default_engine)
        if not engine:
            raise ValueError(f"No {self.client_type} engine specified in configuration ({key}).")
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> ClientInterface:
        """
        Imports and instantiates the client class of the configured engine.

        Raises:
            ValueError: If the engine is unsupported or cannot be imported.
        """
        engine = self._get_engine_from_env()
        class_name = f"{_CLASS_PREFIXES[self.client_type]}{engine}"
        try:
            module = __import__(
                f"shared.clients.{self.client_type}.{engine.lower()}.{class_name}",
                fromlist=[class_name],
            )
            client_class = getattr(module, class_name)
        except (ImportError, AttributeError) as e:
            raise ValueError(f"Unsupported {self.client_type} engine specified: '{engine}'. Error: {e}")
        client = client_class(helper_config=self.helper_config)
        self.logging.debug("Instantiated %s client for engine: %s", self.client_type, engine)
        return client

    def get_client(self) -> ClientInterface:
        """
        Returns the instantiated client.
        """
        return self.client
