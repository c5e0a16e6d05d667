"""
Deepgram / AssemblyAI adapter response mapping tests.
"""

import pytest

from voicenotes.errors import PermanentProviderError, TransientProviderError
from voicenotes.models.schemas import TranscriptionPayload
from voicenotes.services.ai_clients import AIClientResponseError
from voicenotes.services.providers import AssemblyAIAdapter, DeepgramAdapter


class FakeSTTClient:
    default_language = "en"
    default_model = "nova-2"

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.kwargs = None

    async def transcribe(self, **kwargs):
        self.kwargs = kwargs
        if self.error is not None:
            raise self.error
        return self.response

    async def check_health(self) -> bool:
        return True

    async def close(self) -> None:
        pass


DEEPGRAM_RESPONSE = {
    "metadata": {"duration": 30.0},
    "results": {
        "channels": [
            {
                "alternatives": [
                    {
                        "transcript": "hello world",
                        "confidence": 0.95,
                        "words": [
                            {"word": "hello", "punctuated_word": "Hello", "start": 0.1, "end": 0.4, "confidence": 0.97, "speaker": 0},
                            {"word": "world", "start": 0.5, "end": 0.9, "confidence": 0.93, "speaker": 0},
                        ],
                    }
                ]
            }
        ],
        "utterances": [
            {"speaker": 0, "transcript": "hello world", "start": 0.1, "end": 0.9, "confidence": 0.95}
        ],
    },
}

ASSEMBLYAI_RESPONSE = {
    "status": "completed",
    "text": "hello world",
    "confidence": 0.91,
    "audio_duration": 30,
    "language_code": "en_us",
    "words": [
        {"text": "hello", "start": 100, "end": 400, "confidence": 0.9, "speaker": "A"},
        {"text": "world", "start": 500, "end": 900, "confidence": 0.92, "speaker": "B"},
    ],
    "utterances": [
        {"speaker": "B", "text": "hello world", "start": 100, "end": 900, "confidence": 0.91}
    ],
}


@pytest.mark.asyncio
async def test_deepgram_response_mapping():
    client = FakeSTTClient(DEEPGRAM_RESPONSE)
    adapter = DeepgramAdapter(client)

    result = await adapter.invoke(TranscriptionPayload(audio=b"\x00" * 16, mime_type="audio/wav"))

    assert result.text == "hello world"
    assert result.confidence == 0.95
    assert result.provider == "deepgram"
    assert [w.word for w in result.words] == ["Hello", "world"]
    assert result.speakers[0].text == "hello world"
    assert result.duration_seconds == 30.0
    assert result.language == "en"
    assert result.model == "nova-2"
    assert client.kwargs["mime_type"] == "audio/wav"
    assert client.kwargs["diarize"] is True


@pytest.mark.asyncio
async def test_deepgram_options_override_defaults():
    client = FakeSTTClient(DEEPGRAM_RESPONSE)
    adapter = DeepgramAdapter(client)

    result = await adapter.invoke(
        TranscriptionPayload(audio=b"\x01"),
        {"language": "de", "enable_speaker_diarization": False},
    )

    assert result.language == "de"
    assert result.speakers == []
    assert client.kwargs["language"] == "de"
    assert client.kwargs["diarize"] is False


@pytest.mark.asyncio
async def test_deepgram_empty_results_is_transient():
    adapter = DeepgramAdapter(FakeSTTClient({"results": {"channels": []}}))

    with pytest.raises(TransientProviderError):
        await adapter.invoke(TranscriptionPayload(audio=b"\x01"))


@pytest.mark.asyncio
async def test_assemblyai_response_mapping():
    client = FakeSTTClient(ASSEMBLYAI_RESPONSE)
    adapter = AssemblyAIAdapter(client)

    result = await adapter.invoke(TranscriptionPayload(audio_url="https://example.com/note.webm"))

    assert result.text == "hello world"
    assert result.provider == "assemblyai"
    assert result.words[0].start == pytest.approx(0.1)
    assert result.words[1].speaker == 1
    assert result.speakers[0].speaker == 1
    assert result.language == "en_us"
    assert client.kwargs["audio_url"] == "https://example.com/note.webm"
    assert client.kwargs["audio"] is None


@pytest.mark.asyncio
async def test_client_errors_are_classified():
    rejected = AssemblyAIAdapter(FakeSTTClient(error=AIClientResponseError("bad key", status_code=401)))
    overloaded = AssemblyAIAdapter(FakeSTTClient(error=AIClientResponseError("busy", status_code=503)))

    with pytest.raises(PermanentProviderError):
        await rejected.invoke(TranscriptionPayload(audio=b"\x01"))
    with pytest.raises(TransientProviderError):
        await overloaded.invoke(TranscriptionPayload(audio=b"\x01"))
