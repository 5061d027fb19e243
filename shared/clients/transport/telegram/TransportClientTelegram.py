import hmac

from shared.clients.transport.TransportClientInterface import TransportClientInterface
from shared.clients.transport.models.ChatUpdate import ChatUpdate
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig

TELEGRAM_MAX_MESSAGE_LENGTH = 4096


class TransportClientTelegram(TransportClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default="https://api.telegram.org", val_type="string")
        self._bot_token = self.get_config_val("BOT_TOKEN", default=None, val_type="string")
        self._secret_token = self.get_config_val("SECRET_TOKEN", default="", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Telegram"

    def get_max_message_length(self) -> int:
        return TELEGRAM_MAX_MESSAGE_LENGTH

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default="https://api.telegram.org"),
            EnvConfig(env_key="BOT_TOKEN", val_type="string", default=None),
            EnvConfig(env_key="SECRET_TOKEN", val_type="string", default=""),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        # the bot token is part of the URL path
        return {}

    def verify_update_secret(self, secret: str | None) -> bool:
        if not self._secret_token:
            return True
        return hmac.compare_digest(self._secret_token, secret or "")

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return f"{self._base_url.rstrip('/')}/bot{self._bot_token}"

    def _get_endpoint_healthcheck(self) -> str:
        return "/getMe"

    def _get_endpoint_send_message(self) -> str:
        return "/sendMessage"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def get_send_payload(self, chat_id: str, text: str, formatted: bool) -> dict:
        payload = {"chat_id": chat_id, "text": text, "disable_web_page_preview": True}
        if formatted:
            payload["parse_mode"] = "Markdown"
        return payload

    ##########################################
    ############### PARSER ###################
    ##########################################

    def parse_update(self, payload: dict) -> ChatUpdate | None:
        message = payload.get("message") or payload.get("edited_message")
        if not isinstance(message, dict):
            return None
        chat = message.get("chat") or {}
        text = message.get("text")
        if chat.get("id") is None or not text or not text.strip():
            return None

        text = text.strip()
        sender = message.get("from") or {}
        user_name = sender.get("username") or sender.get("first_name")
        if not text.startswith("/"):
            return ChatUpdate(chat_id=str(chat["id"]), text=text, user_name=user_name)

        tokens = text.split()
        # "/lang@policy_bot en" -> "lang"
        command_name = tokens[0][1:].split("@", 1)[0].lower()
        return ChatUpdate(
            chat_id=str(chat["id"]),
            text=text,
            is_command=True,
            command_name=command_name,
            command_args=tokens[1:],
            user_name=user_name,
        )
