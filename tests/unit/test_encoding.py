"""Unit tests for AudioEncoder."""

import io
import wave
import base64

import pytest

from voicecapture.audio.encoding import AudioEncoder
from voicecapture.errors import EncodingError


@pytest.mark.unit
class TestAudioEncoder:

    def test_format_description(self):
        assert AudioEncoder().get_format_description() == "PCM 16-bit mono 16000Hz"
        assert AudioEncoder(sample_rate=8000, channels=2).get_format_description() == \
            "PCM 16-bit 2-channel 8000Hz"

    def test_wav_container(self, sample_audio_chunk):
        wav_bytes = AudioEncoder().to_wav(sample_audio_chunk)

        assert wav_bytes[:4] == b'RIFF'
        assert wav_bytes[8:12] == b'WAVE'
        with wave.open(io.BytesIO(wav_bytes), 'rb') as wf:
            assert wf.getnchannels() == 1
            assert wf.getsampwidth() == 2
            assert wf.getframerate() == 16000
            assert wf.readframes(wf.getnframes()) == sample_audio_chunk

    def test_encode_request(self, sample_audio_chunk):
        request = AudioEncoder().encode(sample_audio_chunk)

        assert request.mime_type == "audio/wav"
        assert request.format_descriptor == "PCM 16-bit mono 16000Hz"
        assert request.audio_bytes == len(sample_audio_chunk)
        decoded = base64.b64decode(request.payload)
        assert decoded == AudioEncoder().to_wav(sample_audio_chunk)

    def test_empty_audio_gives_empty_payload(self):
        request = AudioEncoder().encode(b'')

        assert request.payload == ""
        assert request.audio_bytes == 0

    def test_misaligned_audio(self):
        with pytest.raises(EncodingError):
            AudioEncoder().encode(b'\x00\x01\x02')
