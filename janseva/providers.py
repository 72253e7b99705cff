# AI provider adapters: embedding, text/image classification, speech-to-text.
#
# Each concern has a hosted-model variant (OpenAI) and a rule-based fallback
# variant. build_providers() picks one set at startup; callers never branch
# on availability per request. Adapters swallow and log upstream failures so
# the scoring core only ever sees a value or an explicit absence.

import asyncio
import base64
import hashlib
import json
import logging
import mimetypes
from pathlib import Path
from typing import Dict, List, Optional

import openai as openai_mod
from openai import AsyncOpenAI

from . import config
from .models import (
    Category, CANDIDATE_CATEGORIES, ImageClassification, Prediction,
    TextClassification, Transcription,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Keyword tables
# ---------------------------------------------------------------------------
# Image labels -> civic category
CATEGORY_MAPPING = {
    Category.GARBAGE.value: ["garbage", "trash", "litter", "dumpster", "ashcan", "wastebin", "dustbin"],
    Category.ROAD_DAMAGE.value: ["pothole", "road", "highway", "street", "asphalt", "concrete", "gravel"],
    Category.STREETLIGHT_ISSUE.value: ["lamp", "light", "streetlight", "lantern", "torch", "flashlight"],
    Category.WATER_LEAKAGE.value: ["faucet", "tap", "water", "pipe", "plumbing", "hydrant"],
    Category.DRAINAGE.value: ["sewer", "drain", "sewage", "gutter", "storm", "drainage"],
}

# Complaint text -> civic category
TEXT_KEYWORDS = {
    Category.GARBAGE.value: ["garbage", "trash", "waste", "litter", "dirty", "smell"],
    Category.ROAD_DAMAGE.value: ["pothole", "road", "crack", "broken", "damage", "hole"],
    Category.STREETLIGHT_ISSUE.value: ["light", "streetlight", "dark", "lamp", "no light"],
    Category.WATER_LEAKAGE.value: ["water", "leak", "pipe", "tap", "overflow"],
    Category.DRAINAGE.value: ["drain", "sewer", "clog", "flood", "water logging"],
}

KEYWORD_HIT_SCORE = 0.2

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def truncate_text(text: str, max_chars: int = 3000) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "..."

async def openai_chat(client: AsyncOpenAI, messages: list, model: str, json_mode: bool = False,
                      max_retries: int = 3) -> Optional[str]:
    kwargs = {}
    if json_mode:
        kwargs["response_format"] = {"type": "json_object"}
    for attempt in range(max_retries):
        try:
            resp = await client.chat.completions.create(model=model, messages=messages, **kwargs)
            content = resp.choices[0].message.content
            return content.strip() if content else None
        except (openai_mod.RateLimitError, openai_mod.APIConnectionError) as e:
            logger.warning("OpenAI retry %d: %s", attempt + 1, e)
            if attempt == max_retries - 1:
                raise
            await asyncio.sleep(2 ** attempt)
    return None

def map_label_to_category(predictions: List[Prediction]) -> ImageClassification:
    """Pick the most confident prediction whose label names a civic category."""
    best_label = predictions[0].label if predictions else "unknown"
    best_category, best_confidence = Category.OTHER.value, 0.0
    for pred in predictions:
        label = pred.label.lower()
        for category, keywords in CATEGORY_MAPPING.items():
            if any(k in label for k in keywords):
                if pred.confidence > best_confidence:
                    best_category, best_confidence, best_label = category, pred.confidence, pred.label
    return ImageClassification(predicted_label=best_label, confidence=best_confidence,
                               mapped_category=best_category, all_predictions=predictions)

# ---------------------------------------------------------------------------
# Embedding
# ---------------------------------------------------------------------------
class NullEmbedder:
    async def embed(self, text: str) -> Optional[List[float]]:
        return None

class OpenAIEmbedder:
    def __init__(self, client: AsyncOpenAI, model: str = config.EMBEDDING_MODEL, cache_size: int = 500):
        self.client = client
        self.model = model
        self.cache_size = cache_size
        self._cache: Dict[str, List[float]] = {}

    async def embed(self, text: str) -> Optional[List[float]]:
        if not text or not text.strip():
            return None
        text = truncate_text(text, 2000)
        key = hashlib.sha256(text.encode()).hexdigest()
        if key in self._cache:
            return self._cache[key]
        try:
            response = await self.client.embeddings.create(model=self.model, input=text)
        except Exception as e:
            logger.error("Embedding error: %s", e)
            return None
        vec = list(response.data[0].embedding)
        self._cache[key] = vec
        if len(self._cache) > self.cache_size:
            del self._cache[next(iter(self._cache))]
        return vec

# ---------------------------------------------------------------------------
# Text classification
# ---------------------------------------------------------------------------
class KeywordTextClassifier:
    async def classify(self, text: str) -> TextClassification:
        return self.score(text)

    @staticmethod
    def score(text: str) -> TextClassification:
        lower = (text or "").lower()
        scores = {c: 0.0 for c in CANDIDATE_CATEGORIES}
        best_category, best_score = Category.OTHER.value, 0.0
        for category, words in TEXT_KEYWORDS.items():
            hits = sum(1 for w in words if w in lower)
            scores[category] = round(hits * KEYWORD_HIT_SCORE, 4)
            if scores[category] > best_score:
                best_category, best_score = category, scores[category]
        return TextClassification(predicted_category=best_category,
                                  confidence=min(best_score, 1.0), scores=scores)

class OpenAITextClassifier:
    """Zero-shot classification over the candidate categories."""

    def __init__(self, client: AsyncOpenAI, model: str = config.OPENAI_MODEL):
        self.client = client
        self.model = model

    async def classify(self, text: str) -> TextClassification:
        prompt = (
            "Classify this citizen complaint about a civic issue.\n\n"
            f'Complaint: "{truncate_text(text or "", 2000)}"\n\n'
            f"Candidate labels: {', '.join(CANDIDATE_CATEGORIES)}.\n"
            'Return a JSON object {"scores": {label: probability}} with every candidate '
            "label as a key and probabilities summing to 1."
        )
        try:
            result = await openai_chat(self.client, [{"role": "user", "content": prompt}],
                                       self.model, json_mode=True)
            if result:
                raw = json.loads(result).get("scores", {})
                scores = {c: max(float(raw.get(c, 0) or 0), 0.0) for c in CANDIDATE_CATEGORIES}
                total = sum(scores.values())
                if total > 0:
                    scores = {c: s / total for c, s in scores.items()}
                    predicted = max(scores, key=scores.get)
                    return TextClassification(predicted_category=predicted,
                                              confidence=scores[predicted], scores=scores)
        except Exception as e:
            logger.error("Text classification error: %s", e)
        return KeywordTextClassifier.score(text)

# ---------------------------------------------------------------------------
# Image classification
# ---------------------------------------------------------------------------
class FallbackImageClassifier:
    async def classify(self, image_path) -> ImageClassification:
        return ImageClassification(predicted_label="unknown", confidence=0.0,
                                   mapped_category=Category.OTHER.value, all_predictions=[])

class OpenAIImageClassifier:
    def __init__(self, client: AsyncOpenAI, model: str = config.VISION_MODEL, top_k: int = 5):
        self.client = client
        self.model = model
        self.top_k = top_k

    async def classify(self, image_path) -> ImageClassification:
        path = Path(image_path)
        if not path.is_file():
            logger.warning("Image not found for classification: %s", path)
            return await FallbackImageClassifier().classify(image_path)
        mime = mimetypes.guess_type(path.name)[0] or "image/jpeg"
        data_url = f"data:{mime};base64,{base64.b64encode(path.read_bytes()).decode()}"
        prompt = (
            f"List the {self.top_k} most likely objects or scene labels in this photo. "
            'Return JSON: {"predictions": [{"label": "...", "confidence": 0.0}, ...]} '
            "ordered by confidence, confidences between 0 and 1."
        )
        messages = [{"role": "user", "content": [
            {"type": "text", "text": prompt},
            {"type": "image_url", "image_url": {"url": data_url}},
        ]}]
        try:
            result = await openai_chat(self.client, messages, self.model, json_mode=True)
            if result:
                preds = [Prediction(label=str(p["label"]), confidence=float(p.get("confidence", 0)))
                         for p in json.loads(result).get("predictions", []) if p.get("label")]
                return map_label_to_category(preds[:self.top_k])
        except Exception as e:
            logger.error("Image classification error: %s", e)
        return await FallbackImageClassifier().classify(image_path)

# ---------------------------------------------------------------------------
# Speech-to-text
# ---------------------------------------------------------------------------
class NullTranscriber:
    async def transcribe(self, audio_path) -> Transcription:
        return Transcription(text=None, error="Speech-to-text not configured")

class OpenAITranscriber:
    def __init__(self, client: AsyncOpenAI, model: str = config.TRANSCRIBE_MODEL):
        self.client = client
        self.model = model

    async def transcribe(self, audio_path) -> Transcription:
        try:
            with open(audio_path, "rb") as f:
                result = await self.client.audio.transcriptions.create(
                    model=self.model, file=f, response_format="verbose_json")
            return Transcription(text=result.text, language=getattr(result, "language", None) or "en")
        except Exception as e:
            logger.error("Speech-to-text error: %s", e)
            return Transcription(text=None, error=str(e))

# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------
class AIProviders:
    def __init__(self, backend: str, embedder, text_classifier, image_classifier, transcriber):
        self.backend = backend
        self.embedder = embedder
        self.text_classifier = text_classifier
        self.image_classifier = image_classifier
        self.transcriber = transcriber

def fallback_providers() -> AIProviders:
    return AIProviders("fallback", NullEmbedder(), KeywordTextClassifier(),
                       FallbackImageClassifier(), NullTranscriber())

def build_providers(backend: str = config.AI_BACKEND, api_key: Optional[str] = config.OPENAI_API_KEY) -> AIProviders:
    if backend == "openai":
        if not api_key:
            logger.warning("AI_BACKEND=openai but OPENAI_API_KEY is not set; using fallback providers")
            return fallback_providers()
        client = AsyncOpenAI(api_key=api_key)
        return AIProviders("openai", OpenAIEmbedder(client), OpenAITextClassifier(client),
                           OpenAIImageClassifier(client), OpenAITranscriber(client))
    if backend != "fallback":
        logger.warning("Unknown AI_BACKEND %r; using fallback providers", backend)
    return fallback_providers()
