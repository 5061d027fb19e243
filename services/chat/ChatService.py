from shared.clients.transport.TransportClientInterface import TransportClientInterface
from shared.clients.transport.models.ChatUpdate import ChatUpdate
from shared.helper.HelperConfig import HelperConfig
from shared.models.context import RequestContext
from services.conversation.ConversationService import ConversationService
from services.rag.AnswerService import AnswerService
from services.rag.prompts import (
    APOLOGY_MESSAGE,
    HELP_MESSAGE,
    LANGUAGE_ALIASES,
    LANGUAGE_SET_MESSAGE,
    LANGUAGE_USAGE_MESSAGE,
    RESET_MESSAGE,
    UNSUPPORTED_LANGUAGE_MESSAGE,
    localize,
)


class ChatService:
    """Dispatches inbound chat updates to commands or the answer pipeline and sends the reply."""

    def __init__(
        self,
        helper_config: HelperConfig,
        transport_client: TransportClientInterface,
        conversation_service: ConversationService,
        answer_service: AnswerService,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._transport = transport_client
        self._conversations = conversation_service
        self._answers = answer_service

    ##########################################
    ################ CORE ####################
    ##########################################

    async def do_handle_update(self, update: ChatUpdate, ctx: RequestContext) -> str:
        """Handle one chat update and send the reply.

        Any failure is answered with a localized apology instead of propagating.

        Returns:
            str: The reply that was sent.
        """
        try:
            if update.is_command:
                reply = await self._handle_command(update, ctx)
            else:
                result = await self._answers.do_answer(update.text, ctx)
                reply = result.answer
        except Exception as exc:
            self.logging.exception("[%s] Handling message of chat %s failed: %s", ctx.correlation_id, ctx.chat_id, exc)
            reply = localize(APOLOGY_MESSAGE, await self._language_of(ctx.chat_id))

        try:
            await self._transport.do_send_message(ctx.chat_id, reply)
        except Exception as exc:
            self.logging.error("[%s] Sending reply to chat %s failed: %s", ctx.correlation_id, ctx.chat_id, exc)
        return reply

    async def _language_of(self, chat_id: str) -> str:
        try:
            conversation = await self._conversations.do_ensure_session(chat_id)
            return conversation.language
        except Exception as exc:
            self.logging.warning("Language of chat %s unavailable, using default: %s", chat_id, exc)
            return self._conversations.default_language

    ##########################################
    ############### COMMANDS #################
    ##########################################

    async def _handle_command(self, update: ChatUpdate, ctx: RequestContext) -> str:
        command = update.command_name or ""
        self.logging.info("[%s] Command /%s from chat %s.", ctx.correlation_id, command, ctx.chat_id)

        if command == "reset":
            async with self._conversations.lock(ctx.chat_id):
                conversation = await self._conversations.do_reset(ctx.chat_id)
            return localize(RESET_MESSAGE, conversation.language)

        if command == "lang":
            if not update.command_args:
                return LANGUAGE_USAGE_MESSAGE
            value = update.command_args[0].strip().lower()
            language = LANGUAGE_ALIASES.get(value)
            if language is None:
                return UNSUPPORTED_LANGUAGE_MESSAGE.format(value=value)
            async with self._conversations.lock(ctx.chat_id):
                await self._conversations.do_set_language(ctx.chat_id, language)
            return localize(LANGUAGE_SET_MESSAGE, language)

        # /start, /help and unknown commands
        conversation = await self._conversations.do_ensure_session(ctx.chat_id)
        return localize(HELP_MESSAGE, conversation.language)
