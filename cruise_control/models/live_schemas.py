"""
Pydantic models for Gemini Live (BidiGenerateContent) message structures.

This module provides type-safe models for the messages exchanged with the Gemini Live
WebSocket API: the ``setup`` handshake, realtime audio input, and the server messages
carrying agent audio, transcriptions and turn signals. Field names follow the camelCase
keys used on the wire.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from cruise_control.config.constants import (
    DEFAULT_VOICE,
    INPUT_MIME_TYPE,
    RESPONSE_MODALITY_AUDIO,
)


# Outbound messages
class PrebuiltVoiceConfig(BaseModel):
    voiceName: str = DEFAULT_VOICE


class VoiceConfig(BaseModel):
    prebuiltVoiceConfig: PrebuiltVoiceConfig = Field(default_factory=PrebuiltVoiceConfig)


class SpeechConfig(BaseModel):
    voiceConfig: VoiceConfig = Field(default_factory=VoiceConfig)


class GenerationConfig(BaseModel):
    """Generation settings: audio-only responses in a fixed voice."""
    responseModalities: List[str] = Field(default_factory=lambda: [RESPONSE_MODALITY_AUDIO])
    speechConfig: SpeechConfig = Field(default_factory=SpeechConfig)


class TextPart(BaseModel):
    text: str


class Content(BaseModel):
    parts: List[TextPart]


class Setup(BaseModel):
    model: str = Field(..., description="Fully qualified model name, e.g. models/<name>")
    generationConfig: GenerationConfig = Field(default_factory=GenerationConfig)
    systemInstruction: Optional[Content] = None
    # An empty object enables transcription of the agent's speech
    outputAudioTranscription: Optional[Dict[str, Any]] = None


class SetupMessage(BaseModel):
    """First message on a new session: configures model, voice and directive."""
    setup: Setup

    @classmethod
    def build(cls, model: str, directive: str, voice: str = DEFAULT_VOICE) -> "SetupMessage":
        qualified = model if model.startswith("models/") else f"models/{model}"
        return cls(
            setup=Setup(
                model=qualified,
                generationConfig=GenerationConfig(
                    speechConfig=SpeechConfig(
                        voiceConfig=VoiceConfig(
                            prebuiltVoiceConfig=PrebuiltVoiceConfig(voiceName=voice)
                        )
                    )
                ),
                systemInstruction=Content(parts=[TextPart(text=directive)]),
                outputAudioTranscription={},
            )
        )


class MediaChunk(BaseModel):
    mimeType: str = INPUT_MIME_TYPE
    data: str = Field(..., description="Base64 encoded little-endian PCM16")


class RealtimeInput(BaseModel):
    mediaChunks: List[MediaChunk]


class RealtimeInputMessage(BaseModel):
    """One captured microphone frame forwarded to the agent."""
    realtimeInput: RealtimeInput

    @classmethod
    def audio(cls, data: str, mime_type: str = INPUT_MIME_TYPE) -> "RealtimeInputMessage":
        return cls(realtimeInput=RealtimeInput(mediaChunks=[MediaChunk(mimeType=mime_type, data=data)]))


# Inbound messages
class InlineData(BaseModel):
    mimeType: str = ""
    data: str = ""


class Part(BaseModel):
    text: Optional[str] = None
    inlineData: Optional[InlineData] = None


class ModelTurn(BaseModel):
    parts: List[Part] = Field(default_factory=list)


class Transcription(BaseModel):
    text: str = ""


class ServerContent(BaseModel):
    modelTurn: Optional[ModelTurn] = None
    outputTranscription: Optional[Transcription] = None
    turnComplete: bool = False
    interrupted: bool = False

    def audio_payloads(self) -> List[str]:
        """Base64 audio segments carried by this message, in order."""
        if not self.modelTurn:
            return []
        return [
            part.inlineData.data
            for part in self.modelTurn.parts
            if part.inlineData and part.inlineData.data
            and (not part.inlineData.mimeType or part.inlineData.mimeType.startswith("audio/pcm"))
        ]

    def texts(self) -> List[str]:
        """Spoken-text fragments: the output transcription plus any text parts."""
        fragments = []
        if self.outputTranscription and self.outputTranscription.text:
            fragments.append(self.outputTranscription.text)
        if self.modelTurn:
            fragments.extend(part.text for part in self.modelTurn.parts if part.text)
        return fragments


class GoAway(BaseModel):
    timeLeft: Optional[str] = None


class ServerMessage(BaseModel):
    """Any message received from the Gemini Live API; unknown keys are ignored."""
    setupComplete: Optional[Dict[str, Any]] = None
    serverContent: Optional[ServerContent] = None
    goAway: Optional[GoAway] = None
    error: Optional[Dict[str, Any]] = None
