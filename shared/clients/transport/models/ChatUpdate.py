from pydantic import BaseModel


class ChatUpdate(BaseModel):
    """An inbound chat message, reduced to what the bot acts on.

    Attributes:
        chat_id:       Session key of the chat.
        text:          The raw message text.
        is_command:    True if the text starts with "/".
        command_name:  Lowercased command without slash and bot suffix (e.g. "lang").
        command_args:  Whitespace-separated arguments after the command.
        user_name:     Display name of the sender, if known.
    """

    chat_id: str
    text: str
    is_command: bool = False
    command_name: str | None = None
    command_args: list[str] = []
    user_name: str | None = None
