import json

import pytest
from pydantic import ValidationError

from cruise_control.models.live_schemas import (
    RealtimeInputMessage,
    ServerMessage,
    SetupMessage,
)


def test_setup_message_wire_shape():
    message = SetupMessage.build("gemini-live-test", "Be polite.", voice="Puck")

    payload = json.loads(message.model_dump_json(exclude_none=True))
    setup = payload["setup"]
    assert setup["model"] == "models/gemini-live-test"
    assert setup["generationConfig"]["responseModalities"] == ["AUDIO"]
    assert setup["generationConfig"]["speechConfig"]["voiceConfig"]["prebuiltVoiceConfig"] == {"voiceName": "Puck"}
    assert setup["systemInstruction"] == {"parts": [{"text": "Be polite."}]}
    assert setup["outputAudioTranscription"] == {}


def test_setup_keeps_qualified_model_name():
    message = SetupMessage.build("models/gemini-live-test", "Be polite.")
    assert message.setup.model == "models/gemini-live-test"


def test_realtime_input_message():
    payload = json.loads(RealtimeInputMessage.audio("AAAA").model_dump_json())

    assert payload == {
        "realtimeInput": {"mediaChunks": [{"mimeType": "audio/pcm;rate=16000", "data": "AAAA"}]}
    }


def test_server_content_audio_and_text():
    message = ServerMessage.model_validate({
        "serverContent": {
            "modelTurn": {"parts": [
                {"inlineData": {"mimeType": "audio/pcm;rate=24000", "data": "AAAA"}},
                {"inlineData": {"mimeType": "image/png", "data": "BBBB"}},
                {"inlineData": {"data": "CCCC"}},
                {"text": "thinking"},
            ]},
            "outputTranscription": {"text": "User Alert"},
            "turnComplete": True,
        }
    })

    content = message.serverContent
    assert content.audio_payloads() == ["AAAA", "CCCC"]
    assert content.texts() == ["User Alert", "thinking"]
    assert content.turnComplete
    assert not content.interrupted


def test_server_message_ignores_unknown_keys():
    message = ServerMessage.model_validate({"setupComplete": {}, "usageMetadata": {"totalTokenCount": 3}})

    assert message.setupComplete == {}
    assert message.serverContent is None


def test_server_message_rejects_wrong_types():
    with pytest.raises(ValidationError):
        ServerMessage.model_validate({"serverContent": {"modelTurn": {"parts": "nope"}}})
