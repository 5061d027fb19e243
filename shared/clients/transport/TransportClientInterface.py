from abc import abstractmethod

import httpx

from shared.clients.ClientInterface import ClientInterface
from shared.clients.transport.models.ChatUpdate import ChatUpdate
from shared.helper.HelperConfig import HelperConfig


class TransportClientInterface(ClientInterface):
    """Outgoing messages to, and parsing of incoming updates from, a chat platform."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "transport"

    @abstractmethod
    def get_max_message_length(self) -> int:
        """
        Returns the maximum length of a single outgoing message.
        """
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_send_message(self) -> str:
        """
        Returns the endpoint path for sending a message (e.g. "/sendMessage").
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_send_payload(self, chat_id: str, text: str, formatted: bool) -> dict:
        """
        Builds the request body for sending a message.

        Args:
            chat_id (str): Target chat.
            text (str): Message text.
            formatted (bool): Whether to ask the platform to render markup.
        """
        pass

    ################ PARSER ##################
    @abstractmethod
    def parse_update(self, payload: dict) -> ChatUpdate | None:
        """
        Parses an inbound webhook update.

        Returns:
            ChatUpdate | None: The text message, or None for updates without one.
        """
        pass

    @abstractmethod
    def verify_update_secret(self, secret: str | None) -> bool:
        """
        Checks the shared secret sent along with inbound updates.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    def split_message(self, text: str) -> list[str]:
        """Split a long message into parts that fit the platform limit, preferring line breaks."""
        limit = self.get_max_message_length()
        parts: list[str] = []
        remaining = text
        while len(remaining) > limit:
            cut = remaining.rfind("\n", 0, limit)
            if cut <= 0:
                cut = limit
            parts.append(remaining[:cut])
            remaining = remaining[cut:].lstrip("\n")
        if remaining:
            parts.append(remaining)
        return parts

    async def do_send_message(self, chat_id: str, text: str) -> None:
        """Send a message, falling back to plain text if the platform rejects the markup.

        Args:
            chat_id (str): Target chat.
            text (str): Message text.

        Raises:
            Exception: If the message cannot be delivered even as plain text.
        """
        for part in self.split_message(text):
            response: httpx.Response = await self.do_request(
                method="POST",
                json=self.get_send_payload(chat_id, part, formatted=True),
                endpoint=self._get_endpoint_send_message(),
            )
            if response.status_code == 400:
                self.logging.warning("Formatted message to chat %s rejected, resending as plain text.", chat_id)
                response = await self.do_request(
                    method="POST",
                    json=self.get_send_payload(chat_id, part, formatted=False),
                    endpoint=self._get_endpoint_send_message(),
                )
            if not response.is_success:
                self.logging.error("Sending message to chat %s failed with status %d: %s", chat_id, response.status_code, response.text[:200])
                raise Exception(f"Sending message to chat {chat_id} failed with status {response.status_code}")
