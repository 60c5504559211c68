"""Text-to-speech provider adapter."""

from openai import AsyncOpenAI, OpenAIError

from .config import config
from .errors import ProviderFailure
from .models import AudioClip

logger = config.get_logger(__name__)

CONTENT_TYPES = {
    "mp3": "audio/mpeg",
    "opus": "audio/ogg",
    "aac": "audio/aac",
    "flac": "audio/flac",
    "wav": "audio/wav",
    "pcm": "audio/pcm",
}


class SpeechService:
    """Synthesizes speech for a complete answer text."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        voice: str | None = None,
        response_format: str | None = None,
    ) -> None:
        default_headers = config.get_api_headers()
        self.client = AsyncOpenAI(
            api_key=api_key or config.get_openai_api_key(),
            base_url=config.OPENAI_BASE_URL,
            default_headers=default_headers or None,
            timeout=config.PROVIDER_TIMEOUT,
            max_retries=0,
        )
        self.model = model or config.TTS_MODEL
        self.voice = voice or config.TTS_VOICE
        self.response_format = response_format or config.TTS_FORMAT

    async def synthesize(self, text: str) -> AudioClip:
        """Synthesize ``text`` into a playable clip.

        Returns:
            AudioClip holding the provider's bytes and their content type.

        Raises:
            ValueError: If ``text`` is blank.
            ProviderFailure: If the speech provider fails.
        """
        if not text.strip():
            msg = "No text provided for speech synthesis."
            raise ValueError(msg)

        try:
            response = await self.client.audio.speech.create(
                model=self.model,
                voice=self.voice,
                input=text,
                response_format=self.response_format,
            )
            data = response.content
        except OpenAIError as exc:
            logger.exception("Speech synthesis failed")
            msg = f"TTS provider error: {exc}"
            raise ProviderFailure(msg) from exc

        logger.info("Synthesized %d bytes of %s audio", len(data), self.response_format)
        return AudioClip(
            data=data,
            content_type=CONTENT_TYPES.get(self.response_format, "application/octet-stream"),
        )
