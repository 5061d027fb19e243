"""Localized prompt and reply texts for the answer and memory pipelines."""

from shared.models.conversation import Message, MessageRole
from shared.models.search import RetrievedChunk

SUPPORTED_LANGUAGES = ("ko", "en")
RECENT_TURNS_IN_PROMPT = 5

NO_EVIDENCE_MESSAGE = {
    "ko": "규정에 해당 내용이 없습니다.",
    "en": "The regulations do not contain information on this topic.",
}

APOLOGY_MESSAGE = {
    "ko": "죄송합니다. 요청을 처리하는 중 오류가 발생했습니다. 잠시 후 다시 시도해 주세요.",
    "en": "Sorry, something went wrong while processing your request. Please try again later.",
}

SOURCES_HEADER = "📋 Sources:"

_PERSONA = {
    "ko": (
        "너는 규정·업무지침 전용 챗봇이다.\n\n"
        "**중요한 규칙:**\n"
        "1) 답변은 아래 [규정 근거]에만 기반한다.\n"
        "2) [이전 대화 요약]과 [최근 대화]는 맥락 이해 보조용이며, 근거로 인용 금지.\n"
        "3) 근거가 없으면 \"{no_evidence}\"라고 답한다.\n"
        "4) 한국어로 간결하고 정확하게 답하라."
    ),
    "en": (
        "You are an assistant that answers only from the organisation's regulations and work guidelines.\n\n"
        "**Important rules:**\n"
        "1) Base the answer only on the [Regulation evidence] below.\n"
        "2) [Conversation summary] and [Recent conversation] only help you understand the context; never cite them as evidence.\n"
        "3) If there is no evidence, answer \"{no_evidence}\".\n"
        "4) Answer in English, concisely and accurately."
    ),
}

_LABELS = {
    "ko": {
        "summary": "[이전 대화 요약]",
        "recent": "[최근 대화]",
        "evidence": "[규정 근거]",
        "question": "질문",
        "answer": "답변",
        "user": "사용자",
        "assistant": "챗봇",
        "closing": "위 [규정 근거]에 없는 내용은 추측하지 말고 \"{no_evidence}\"라고 답하라.",
    },
    "en": {
        "summary": "[Conversation summary]",
        "recent": "[Recent conversation]",
        "evidence": "[Regulation evidence]",
        "question": "Question",
        "answer": "Answer",
        "user": "User",
        "assistant": "Assistant",
        "closing": "Do not guess anything that is not in the [Regulation evidence] above; answer \"{no_evidence}\" instead.",
    },
}

_SUMMARY_INSTRUCTIONS = {
    "ko": (
        "다음 대화를 5~8줄로 요약하되:\n"
        "- 사용자의 지속되는 의도/조건/제약(예: \"휴가 규정만\", \"결론 먼저\")을 남기고\n"
        "- 특정 사실은 규정 근거가 확인된 항목만 유지\n"
        "- 불필요한 소회·잡담 제거\n"
        "- 한국어로 간결하게"
    ),
    "en": (
        "Summarize the following conversation in 5 to 8 lines:\n"
        "- keep the user's persistent intents, conditions and constraints (e.g. \"leave rules only\", \"conclusion first\")\n"
        "- keep specific facts only when they were backed by regulation evidence\n"
        "- drop small talk\n"
        "- write concisely in English"
    ),
}

_SUMMARY_LABELS = {
    "ko": ("대화 내용", "요약"),
    "en": ("Conversation", "Summary"),
}

HELP_MESSAGE = {
    "ko": (
        "🤖 *규정·업무지침 답변봇*\n\n"
        "*📖 사용법:*\n"
        "• 규정이나 업무지침에 대한 질문을 자유롭게 입력하세요.\n"
        "• 구체적이고 명확한 질문일수록 정확한 답변을 받을 수 있습니다.\n\n"
        "*🔧 명령어:*\n"
        "• /help - 이 도움말 보기\n"
        "• /reset - 대화 세션 초기화\n"
        "• /lang ko|en - 응답 언어 변경\n\n"
        "*⚠️ 주의사항:*\n"
        "• 규정에 명시된 내용만 답변합니다\n"
        "• 최신 규정 정보는 공식 홈페이지를 확인해 주세요"
    ),
    "en": (
        "🤖 *Policy Assistant Bot*\n\n"
        "*📖 How to use:*\n"
        "• Ask questions about the regulations and work guidelines freely.\n"
        "• More specific questions get more accurate answers.\n\n"
        "*🔧 Commands:*\n"
        "• /help - Show this help message\n"
        "• /reset - Reset the conversation session\n"
        "• /lang ko|en - Change the response language\n\n"
        "*⚠️ Notes:*\n"
        "• Answers are based only on documented regulations\n"
        "• Please check the official website for the latest regulations"
    ),
}

RESET_MESSAGE = {
    "ko": "✅ *대화 세션 초기화 완료*\n\n이전 대화 내용이 모두 삭제되었습니다. 새로운 대화를 시작해 주세요.",
    "en": "✅ *Conversation reset*\n\nThe previous conversation was deleted. Feel free to start a new one.",
}

LANGUAGE_SET_MESSAGE = {
    "ko": "✅ *언어 설정 완료*\n\n응답 언어를 한국어로 설정했습니다.",
    "en": "✅ *Language updated*\n\nResponse language set to English.",
}

LANGUAGE_USAGE_MESSAGE = (
    "🌐 *언어 설정 / Language*\n\n"
    "사용법: /lang ko 또는 /lang en\n"
    "Usage: /lang ko or /lang en"
)

UNSUPPORTED_LANGUAGE_MESSAGE = (
    "❌ 지원하지 않는 언어 / Unsupported language: {value}\n\n"
    "✅ 지원 언어 / Supported languages: ko, en"
)

# accepted /lang arguments
LANGUAGE_ALIASES = {
    "ko": "ko",
    "korean": "ko",
    "한국어": "ko",
    "en": "en",
    "english": "en",
    "영어": "en",
}


def localize(table: dict[str, str], language: str | None) -> str:
    return table.get(language or "ko", table["ko"])


def format_turns(messages: list[Message], language: str) -> str:
    labels = _LABELS.get(language, _LABELS["ko"])
    lines = []
    for message in messages:
        speaker = labels["user"] if message.role == MessageRole.USER else labels["assistant"]
        lines.append(f"{speaker}: {message.text}")
    return "\n".join(lines)


def build_answer_prompt(
    question: str,
    evidence: list[RetrievedChunk],
    language: str,
    summary: str | None = None,
    recent_messages: list[Message] | None = None,
) -> str:
    """Assemble the grounded answer prompt.

    Sections in order: persona and rules, the optional conversation summary,
    the last few turns, the evidence block, the closing rule and the question.
    """
    labels = _LABELS.get(language, _LABELS["ko"])
    no_evidence = localize(NO_EVIDENCE_MESSAGE, language)

    sections = [localize(_PERSONA, language).format(no_evidence=no_evidence)]
    if summary:
        sections.append(f"{labels['summary']}\n{summary}")
    # a turn is one question and its answer
    recent = (recent_messages or [])[-2 * RECENT_TURNS_IN_PROMPT:]
    if recent:
        sections.append(f"{labels['recent']}\n{format_turns(recent, language)}")

    evidence_lines = []
    for index, chunk in enumerate(evidence, start=1):
        evidence_lines.append(f"({index}) {chunk.title} [{chunk.path}]\n{chunk.text}")
    sections.append(f"{labels['evidence']}\n" + "\n\n".join(evidence_lines))

    sections.append(labels["closing"].format(no_evidence=no_evidence))
    sections.append(f"{labels['question']}: {question}\n\n{labels['answer']}:")
    return "\n\n".join(sections)


def build_summary_prompt(messages: list[Message], language: str) -> str:
    """Prompt for a fresh synopsis of the given messages, it replaces any earlier summary."""
    conversation_label, summary_label = _SUMMARY_LABELS.get(language, _SUMMARY_LABELS["ko"])
    sections = [
        localize(_SUMMARY_INSTRUCTIONS, language),
        f"{conversation_label}:\n{format_turns(messages, language)}",
        f"{summary_label}:",
    ]
    return "\n\n".join(sections)
