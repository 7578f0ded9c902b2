"""Lemmatization: script detection plus per-language base-form analyzers."""

from morphology.analyzers import EnglishNormalizer, Normalizer, RussianNormalizer
from morphology.lemmatizer import Lemmatizer, ScriptRoute

__all__ = [
    "EnglishNormalizer",
    "Lemmatizer",
    "Normalizer",
    "RussianNormalizer",
    "ScriptRoute",
]
