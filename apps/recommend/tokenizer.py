# apps/recommend/tokenizer.py
from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Dict, List, Optional

from langdetect import DetectorFactory, detect
from langdetect.lang_detect_exception import LangDetectException
from nltk.stem.snowball import SnowballStemmer

from config import settings

log = logging.getLogger("tokenizer")

# langdetect is probabilistic; a fixed seed keeps detection reproducible
DetectorFactory.seed = 0

_EDGE_PUNCT = re.compile(r"^[\W_]+|[\W_]+$", re.UNICODE)


@lru_cache(maxsize=None)
def _stemmer(algorithm: str) -> SnowballStemmer:
    return SnowballStemmer(algorithm)


def detect_language(text: str) -> Optional[str]:
    """ISO 639-1 code of the dominant language, or None when undecidable."""
    text = (text or "").strip()
    if not text:
        return None
    try:
        return detect(text)
    except LangDetectException:
        return None


class Tokenizer:
    """Case-folds, splits on whitespace and stems with a per-language Snowball stemmer."""

    def __init__(
        self,
        languages: Optional[Dict[str, str]] = None,
        default: Optional[str] = None,
    ):
        self.languages = dict(languages if languages is not None else settings.stemmer_languages)
        self.default = (default or settings.stemmer_default or "english").lower()
        if self.default not in SnowballStemmer.languages:
            raise ValueError(f"unsupported default stemmer: {self.default}")

    def algorithm_for(self, text: str) -> str:
        lang = detect_language(text)
        algorithm = self.languages.get(lang or "")
        if not algorithm or algorithm not in SnowballStemmer.languages:
            return self.default
        return algorithm

    def tokenize(self, text: str) -> List[str]:
        text = (text or "").lower()
        words = [_EDGE_PUNCT.sub("", w) for w in text.split()]
        words = [w for w in words if w]
        if not words:
            return []
        stemmer = _stemmer(self.algorithm_for(text))
        return [stemmer.stem(w) for w in words]


_default: Optional[Tokenizer] = None


def get_tokenizer() -> Tokenizer:
    global _default
    if _default is None:
        _default = Tokenizer()
    return _default


def tokenize(text: str) -> List[str]:
    return get_tokenizer().tokenize(text)
