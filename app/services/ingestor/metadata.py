"""
Content checksums and lightweight metadata derived from extracted text.
"""
from collections import Counter
from typing import Dict, List, Union
import hashlib
import os
import re

TITLE_MAX_LENGTH = 100
KEYWORD_LIMIT = 10
KEYWORD_MIN_COUNT = 3

_NON_WORD = re.compile(r"[^\w\s]")
_FILENAME_SEPARATORS = re.compile(r"[-_]")


def checksum(raw_bytes: bytes) -> str:
    """
    MD5 hex digest of the raw bytes.

    Only detects accidental modification; not meant to resist tampering.
    """
    return hashlib.md5(raw_bytes).hexdigest()


def file_checksum(file_path: str) -> str:
    digest = hashlib.md5()
    with open(file_path, "rb") as f:
        for block in iter(lambda: f.read(65536), b""):
            digest.update(block)
    return digest.hexdigest()


def derive_title(file_path: str, text: str) -> str:
    """First non-empty line when short enough, else the filename with separators as spaces"""
    for line in text.splitlines():
        candidate = line.strip()
        if candidate:
            if len(candidate) < TITLE_MAX_LENGTH:
                return candidate
            break

    stem = os.path.splitext(os.path.basename(file_path))[0]
    return _FILENAME_SEPARATORS.sub(" ", stem)


def extract_keywords(text: str, limit: int = KEYWORD_LIMIT) -> List[str]:
    """
    Most frequent words of 4 to 19 characters seen at least three times.

    A coarse frequency heuristic; ties keep first-seen order.
    """
    words = _NON_WORD.sub(" ", text.lower()).split()
    counts = Counter(word for word in words if 3 < len(word) < 20)
    frequent = [(word, count) for word, count in counts.items() if count >= KEYWORD_MIN_COUNT]
    frequent.sort(key=lambda item: item[1], reverse=True)
    return [word for word, _ in frequent[:limit]]


def derive_metadata(file_path: str, text: str) -> Dict[str, Union[str, List[str]]]:
    return {
        "title": derive_title(file_path, text),
        "keywords": extract_keywords(text),
    }
