from pydantic import BaseModel


class EnvConfig(BaseModel):
    """
    A single environment setting a client needs.

    Attributes:
        env_key (str): The raw key, prefixed with the client type and engine on lookup (e.g. "API_KEY" -> "CONTENT_GITHUB_API_KEY").
        val_type (str): "string", "number", "bool" or "list".
        default (str | int | float | bool | list | None): Fallback if unset. None makes the setting mandatory.
    """

    env_key: str
    val_type: str
    default: str | int | float | bool | list | None = None
