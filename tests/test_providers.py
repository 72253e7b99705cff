"""Tests for the AI provider adapters, using stub clients in place of OpenAI."""

import json
from types import SimpleNamespace

import pytest

from janseva.models import Prediction
from janseva.providers import (
    FallbackImageClassifier, KeywordTextClassifier, NullEmbedder, NullTranscriber,
    OpenAIEmbedder, OpenAIImageClassifier, OpenAITextClassifier, OpenAITranscriber,
    build_providers, map_label_to_category,
)


def chat_client(content=None, error=None):
    async def create(**kwargs):
        if error:
            raise error
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


def embedding_client(vector, calls):
    async def create(model, input):
        calls.append(input)
        return SimpleNamespace(data=[SimpleNamespace(embedding=vector)])
    return SimpleNamespace(embeddings=SimpleNamespace(create=create))


# ═══════════════════════════════════════════════════════════════════════════════
# WIRING
# ═══════════════════════════════════════════════════════════════════════════════

class TestBuildProviders:
    def test_fallback_backend(self):
        ai = build_providers("fallback", api_key="sk-test")
        assert ai.backend == "fallback"
        assert isinstance(ai.embedder, NullEmbedder)
        assert isinstance(ai.text_classifier, KeywordTextClassifier)
        assert isinstance(ai.image_classifier, FallbackImageClassifier)
        assert isinstance(ai.transcriber, NullTranscriber)

    def test_openai_backend(self):
        ai = build_providers("openai", api_key="sk-test")
        assert ai.backend == "openai"
        assert isinstance(ai.embedder, OpenAIEmbedder)
        assert isinstance(ai.text_classifier, OpenAITextClassifier)

    def test_openai_without_key_falls_back(self):
        assert build_providers("openai", api_key=None).backend == "fallback"

    def test_unknown_backend_falls_back(self):
        assert build_providers("huggingface", api_key="sk-test").backend == "fallback"


# ═══════════════════════════════════════════════════════════════════════════════
# TEXT CLASSIFICATION
# ═══════════════════════════════════════════════════════════════════════════════

class TestKeywordTextClassifier:
    def test_garbage(self):
        result = KeywordTextClassifier.score("Garbage and trash everywhere, terrible smell")
        assert result.predicted_category == "Garbage"
        assert result.confidence == pytest.approx(0.6)

    def test_streetlight_beats_road(self):
        result = KeywordTextClassifier.score("There is no light on the road")
        assert result.predicted_category == "Streetlight Issue"
        assert result.scores["Road Damage"] == pytest.approx(0.2)

    def test_nothing_matches(self):
        result = KeywordTextClassifier.score("The sky is blue today")
        assert result.predicted_category == "Other"
        assert result.confidence == 0
        assert set(result.scores) == {"Garbage", "Road Damage", "Streetlight Issue",
                                      "Water Leakage", "Drainage"}

    def test_confidence_capped(self):
        text = "garbage trash waste litter dirty smell " * 3
        assert KeywordTextClassifier.score(text).confidence <= 1.0

    @pytest.mark.asyncio
    async def test_async_classify(self):
        result = await KeywordTextClassifier().classify("Pipe leak, water everywhere")
        assert result.predicted_category == "Water Leakage"


class TestOpenAITextClassifier:
    @pytest.mark.asyncio
    async def test_normalizes_scores(self):
        client = chat_client(json.dumps({"scores": {"Drainage": 3, "Garbage": 1}}))
        result = await OpenAITextClassifier(client, model="m").classify("blocked drain")
        assert result.predicted_category == "Drainage"
        assert result.confidence == pytest.approx(0.75)
        assert result.scores["Road Damage"] == 0

    @pytest.mark.asyncio
    async def test_upstream_error_uses_keywords(self):
        client = chat_client(error=ValueError("boom"))
        result = await OpenAITextClassifier(client, model="m").classify("garbage dump")
        assert result.predicted_category == "Garbage"

    @pytest.mark.asyncio
    async def test_unusable_reply_uses_keywords(self):
        client = chat_client(json.dumps({"scores": {}}))
        result = await OpenAITextClassifier(client, model="m").classify("streetlight dark")
        assert result.predicted_category == "Streetlight Issue"


# ═══════════════════════════════════════════════════════════════════════════════
# IMAGE CLASSIFICATION
# ═══════════════════════════════════════════════════════════════════════════════

class TestImageClassification:
    def test_label_mapping_prefers_confident_civic_label(self):
        preds = [Prediction(label="cat", confidence=0.9),
                 Prediction(label="pothole on asphalt", confidence=0.6),
                 Prediction(label="trash can", confidence=0.3)]
        result = map_label_to_category(preds)
        assert result.mapped_category == "Road Damage"
        assert result.predicted_label == "pothole on asphalt"
        assert result.confidence == 0.6
        assert len(result.all_predictions) == 3

    def test_label_mapping_without_civic_labels(self):
        result = map_label_to_category([Prediction(label="cat", confidence=0.9)])
        assert result.mapped_category == "Other"
        assert result.predicted_label == "cat"
        assert result.confidence == 0

    @pytest.mark.asyncio
    async def test_fallback(self):
        result = await FallbackImageClassifier().classify("anything.jpg")
        assert result.predicted_label == "unknown"
        assert result.confidence == 0
        assert result.mapped_category == "Other"
        assert result.all_predictions == []

    @pytest.mark.asyncio
    async def test_openai_vision(self, tmp_path):
        image = tmp_path / "photo.jpg"
        image.write_bytes(b"\xff\xd8\xff fake jpeg")
        client = chat_client(json.dumps({"predictions": [
            {"label": "sewer grate", "confidence": 0.8}, {"label": "street", "confidence": 0.5}]}))
        result = await OpenAIImageClassifier(client, model="m").classify(image)
        assert result.mapped_category == "Drainage"
        assert result.confidence == 0.8

    @pytest.mark.asyncio
    async def test_openai_vision_missing_file(self, tmp_path):
        client = chat_client(error=AssertionError("should not be called"))
        result = await OpenAIImageClassifier(client, model="m").classify(tmp_path / "missing.jpg")
        assert result.mapped_category == "Other"


# ═══════════════════════════════════════════════════════════════════════════════
# EMBEDDING & SPEECH
# ═══════════════════════════════════════════════════════════════════════════════

class TestEmbedding:
    @pytest.mark.asyncio
    async def test_null_embedder(self):
        assert await NullEmbedder().embed("anything") is None

    @pytest.mark.asyncio
    async def test_openai_embedder_caches(self):
        calls = []
        embedder = OpenAIEmbedder(embedding_client([0.1, 0.2], calls), model="m")
        first = await embedder.embed("pothole on MG road")
        second = await embedder.embed("pothole on MG road")
        assert first == second == [0.1, 0.2]
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_openai_embedder_cache_is_bounded(self):
        calls = []
        embedder = OpenAIEmbedder(embedding_client([1.0], calls), model="m", cache_size=2)
        for text in ["a", "b", "c"]:
            await embedder.embed(text)
        assert len(embedder._cache) == 2

    @pytest.mark.asyncio
    async def test_openai_embedder_blank_text(self):
        calls = []
        embedder = OpenAIEmbedder(embedding_client([1.0], calls), model="m")
        assert await embedder.embed("   ") is None
        assert calls == []


class TestTranscription:
    @pytest.mark.asyncio
    async def test_null_transcriber(self):
        result = await NullTranscriber().transcribe("clip.webm")
        assert result.text is None
        assert result.error == "Speech-to-text not configured"

    @pytest.mark.asyncio
    async def test_openai_transcriber(self, tmp_path):
        audio = tmp_path / "clip.webm"
        audio.write_bytes(b"audio")

        async def create(model, file, response_format):
            return SimpleNamespace(text="Drain is overflowing", language="english")
        client = SimpleNamespace(audio=SimpleNamespace(transcriptions=SimpleNamespace(create=create)))
        result = await OpenAITranscriber(client, model="m").transcribe(audio)
        assert result.text == "Drain is overflowing"
        assert result.language == "english"
        assert result.error is None
