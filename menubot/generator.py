"""Streaming answer generation grounded on retrieved context."""

from collections.abc import AsyncIterator

from openai import AsyncOpenAI, OpenAIError

from .config import config

logger = config.get_logger(__name__)

UNKNOWN_ANSWER = "我不知道"
ERROR_FRAGMENT_PREFIX = "\n[generation error] "

SYSTEM_PROMPT = (
    "你是一個知識檢索助手，負責回答關於餐廳菜品與酒品的問題。\n"
    "僅能根據使用者提供的 Context 回答問題，不可使用 Context 以外的知識。\n"
    f'如果問題與 Context 無關，或 Context 中找不到答案，請回答："{UNKNOWN_ANSWER}"。'
)


def build_messages(context: str, query: str) -> list[dict[str, str]]:
    """Fill the three prompt slots: instructions, context, verbatim query.

    Returns:
        Chat messages ready for the completion API.
    """
    user_prompt = (
        f'Context: """\n{context}\n"""\n\n'
        f'User Question: """\n{query}\n"""'
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


def is_error_fragment(text: str) -> bool:
    return ERROR_FRAGMENT_PREFIX in text


class Generator:
    """Streams a completion from the language model fragment by fragment."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
    ) -> None:
        default_headers = config.get_api_headers()
        self.client = AsyncOpenAI(
            api_key=api_key or config.get_openai_api_key(),
            base_url=config.OPENAI_BASE_URL,
            default_headers=default_headers or None,
            timeout=config.PROVIDER_TIMEOUT,
            max_retries=0,
        )
        self.model = model or config.CHAT_MODEL
        self.temperature = (
            config.CHAT_TEMPERATURE if temperature is None else temperature
        )

    async def generate(self, context: str, query: str) -> AsyncIterator[str]:
        """Yield answer fragments in emission order.

        A provider failure ends the stream with one fragment starting with
        ``ERROR_FRAGMENT_PREFIX``; it is never raised to the consumer.

        Yields:
            Non-empty text fragments.
        """
        emitted = 0
        try:
            stream = await self.client.chat.completions.create(
                model=self.model,
                messages=build_messages(context, query),
                temperature=self.temperature,
                stream=True,
            )
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    emitted += 1
                    yield delta
        except OpenAIError as exc:
            logger.exception("Completion stream failed after %d fragments", emitted)
            yield f"{ERROR_FRAGMENT_PREFIX}{exc}"
            return

        logger.info("Completion stream finished with %d fragments", emitted)
