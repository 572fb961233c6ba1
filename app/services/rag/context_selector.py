from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
import logging
import re

from app.core.config import settings
from app.schemas.document import DocumentResponse

logger = logging.getLogger(__name__)

NO_DOCUMENTS_CONTEXT = "No relevant documents found in the knowledge base."

# Neighbourhood inspected around a hit when deciding whether it sits in a table of contents
TOC_NEIGHBOURHOOD = 200
MIN_SECTION_LINES = 4
# Occurrences of one phrase tried before giving up on it
MAX_OCCURRENCES_PER_PHRASE = 25

_DOT_LEADER = re.compile(r"(?:\. ){4,}|\.{4,}")
_PERCENTAGE = re.compile(r"\d+(?:\.\d+)?\s?%")
_NON_WORD = re.compile(r"[^\w\s]")
_SENTENCE_SPLIT = re.compile(r"[.!?]+")


@dataclass(frozen=True)
class TopicBucket:
    """Query phrases that identify a topic, and the document phrases to search for it"""
    name: str
    triggers: Tuple[str, ...]
    phrases: Tuple[str, ...]


TOPIC_BUCKETS: Tuple[TopicBucket, ...] = (
    TopicBucket(
        name="refund",
        triggers=(
            "refund", "tuition refund", "withdrawal", "withdraw", "tuition",
            "money back", "university policy for the refund",
        ),
        phrases=(
            "university policy for the refund of tuition", "refunds of tuition",
            "withdrawal", "percentage refund", "refund", "tuition",
        ),
    ),
    TopicBucket(
        name="financial_aid",
        triggers=("financial aid", "scholarship", "grant", "loan", "fafsa"),
        phrases=("financial aid", "scholarship", "grant", "fafsa"),
    ),
    TopicBucket(
        name="housing",
        triggers=("housing", "residence hall", "residential", "dorm"),
        phrases=("residence hall", "housing", "residential"),
    ),
)

POLICY_MARKERS: Tuple[str, ...] = (
    "University policy",
    "Refunds of Tuition and Residence Hall Charges",
    "Financial Responsibility",
    "Enrollment and Financial Matters",
    "Administrative Policies",
)


@dataclass(frozen=True)
class ExcerptCandidate:
    phrase: str
    position: int
    text: str


def query_terms(query: str) -> List[str]:
    """Significant words of a query: lower-cased, punctuation stripped, longer than 3 characters"""
    words = _NON_WORD.sub(" ", query.lower()).split()
    return [word for word in words if len(word) > 3]


def classify_query(query: str) -> Tuple[Optional[str], List[str]]:
    """
    Map a query onto a topic bucket.

    Returns:
        (bucket name, document phrases); the name is None when no bucket
        matched and the phrases are the query's own significant words
    """
    query_lower = query.lower()
    for bucket in TOPIC_BUCKETS:
        if any(trigger in query_lower for trigger in bucket.triggers):
            return bucket.name, list(bucket.phrases)
    return None, query_terms(query)


def looks_like_table_of_contents(text: str, position: int, section: str) -> bool:
    """Check the hit's neighbourhood and its section for table-of-contents shape"""
    line_start = text.rfind("\n", 0, position) + 1
    line_end = text.find("\n", position)
    if line_end == -1:
        line_end = len(text)
    neighbourhood = text[max(0, line_start - TOC_NEIGHBOURHOOD):line_end + TOC_NEIGHBOURHOOD]

    if _DOT_LEADER.search(neighbourhood):
        return True
    if "table of contents" in neighbourhood.lower():
        return True
    # A whole short document is not a fragment of a listing
    if len(section) >= len(text):
        return False
    return len(section.split("\n")) < MIN_SECTION_LINES


def strip_contents_lines(text: str) -> str:
    """Drop dot-leader entries and contents headings"""
    kept = [
        line for line in text.split("\n")
        if not _DOT_LEADER.search(line) and line.strip().lower() not in ("contents", "table of contents")
    ]
    return "\n".join(kept)


class ScoringStrategy(ABC):
    """Ranks surviving excerpt candidates; the highest score wins"""

    @abstractmethod
    def score(self, candidate: ExcerptCandidate, terms: Sequence[str]) -> float:
        pass


class LongestCandidateScorer(ScoringStrategy):
    def score(self, candidate: ExcerptCandidate, terms: Sequence[str]) -> float:
        return float(len(candidate.text))


class PolicyLanguageScorer(ScoringStrategy):
    """
    Prefers genuine policy text over incidental mentions.

    Length is the base score. Fixed bonuses are added for policy vocabulary,
    percentages, coverage of the query's own terms, and for every word of the
    phrase that produced the hit, so a long specific heading outranks a
    passing mention of a single keyword.
    """

    MARKER_BONUS = 500.0
    PERCENTAGE_BONUS = 750.0
    TERM_BONUS = 250.0
    PHRASE_WORD_BONUS = 300.0
    MARKERS = ("policy", "university", "procedure", "withdrawal")

    def score(self, candidate: ExcerptCandidate, terms: Sequence[str]) -> float:
        lowered = candidate.text.lower()
        total = float(len(candidate.text))
        total += sum(self.MARKER_BONUS for marker in self.MARKERS if marker in lowered)
        if _PERCENTAGE.search(candidate.text):
            total += self.PERCENTAGE_BONUS
        total += sum(self.TERM_BONUS for term in terms if term in lowered)
        total += self.PHRASE_WORD_BONUS * len(candidate.phrase.split())
        return total


class ContextSelector:
    """
    Picks one bounded excerpt per document for a free-text query.

    Search order: topic phrases (or the query's own words), then well-known
    policy headings, then a fixed slice past the front matter.
    """

    def __init__(
        self,
        scorer: Optional[ScoringStrategy] = None,
        chars_before: int = settings.EXCERPT_CHARS_BEFORE,
        chars_after: int = settings.EXCERPT_CHARS_AFTER,
        max_length: int = settings.EXCERPT_MAX_LENGTH,
        fallback_offset: float = settings.EXCERPT_FALLBACK_OFFSET,
    ):
        self.scorer = scorer or PolicyLanguageScorer()
        self.chars_before = chars_before
        self.chars_after = chars_after
        self.max_length = max_length
        self.fallback_offset = fallback_offset

    def select_context(self, documents: Sequence[DocumentResponse], query: str) -> str:
        """
        Assemble the prompt context: one labelled excerpt per document.

        Args:
            documents: Candidate documents, in the order they should appear
            query: The user's question

        Returns:
            Context text, or a fixed notice when there are no documents
        """
        if not documents:
            return NO_DOCUMENTS_CONTEXT

        blocks = []
        for index, document in enumerate(documents, start=1):
            excerpt = self.select_excerpt(document.content or "", query)
            blocks.append(f"Document {index}: {document.title}\nContent: {excerpt}")

        context = "\n\n".join(blocks)
        logger.info(f"Built context of {len(context)} characters from {len(documents)} documents")
        return context

    def select_excerpt(self, document_text: str, query: str) -> str:
        """
        Select the excerpt of a document most likely to answer the query.

        Args:
            document_text: Full extracted text of the document
            query: The user's question

        Returns:
            At most max_length characters of the document
        """
        bucket, phrases = classify_query(query)
        logger.debug(f"Query classified as {bucket or 'general'}, searching for: {', '.join(phrases)}")

        candidates = self.find_candidates(document_text, phrases)
        if candidates:
            terms = query_terms(query)
            best = max(candidates, key=lambda c: self.scorer.score(c, terms))
            logger.debug(f"Selected section for '{best.phrase}' at position {best.position}")
            if len(best.text) == len(document_text):
                return strip_contents_lines(best.text)
            return best.text

        if len(document_text) <= self.max_length:
            return strip_contents_lines(document_text)
        return self.policy_fallback(document_text)

    def find_candidates(self, text: str, phrases: Sequence[str]) -> List[ExcerptCandidate]:
        """One candidate per phrase: the window around its first occurrence outside a table of contents"""
        lowered = text.lower()
        candidates = []
        for phrase in phrases:
            position = lowered.find(phrase)
            attempts = 0
            while position != -1 and attempts < MAX_OCCURRENCES_PER_PHRASE:
                section = self._window(text, position, self.chars_before, self.chars_after)
                if not looks_like_table_of_contents(text, position, section):
                    candidates.append(ExcerptCandidate(phrase, position, section))
                    break
                attempts += 1
                position = lowered.find(phrase, position + len(phrase))
        return candidates

    def policy_fallback(self, text: str) -> str:
        """Excerpt around a known policy heading, else a slice starting part-way into the document"""
        for marker in POLICY_MARKERS:
            position = text.find(marker)
            if position == -1:
                continue
            section = self._window(text, position, 500, 3000)
            if len(section) > 1000 and not looks_like_table_of_contents(text, position, section):
                logger.debug(f"Found policy section: {marker}")
                return section

        start = int(len(text) * self.fallback_offset)
        end = min(len(text), start + self.chars_after)
        logger.debug(f"Using document slice {start}-{end}")
        return text[start:end]

    def _window(self, text: str, position: int, before: int, after: int) -> str:
        start = max(0, position - before)
        end = min(len(text), position + after)
        if end - start > self.max_length:
            # Trim leading context first so the hit itself is kept
            start = min(position, end - self.max_length)
            end = min(end, start + self.max_length)
        return text[start:end]

    @staticmethod
    def select_citation_excerpt(text: str, response: str, max_length: int = 200) -> str:
        """
        The sentence of text sharing the most significant words with a response.

        Args:
            text: Source text to quote from
            response: Generated answer the quote should support
            max_length: Longest excerpt returned before truncation with "..."
        """
        response_words = [w for w in response.lower().split() if len(w) > 3]
        sentences = _SENTENCE_SPLIT.split(text)

        best = sentences[0].strip() if sentences and sentences[0].strip() else text[:max_length]
        best_score = 0
        for sentence in sentences:
            sentence_words = set(sentence.lower().split())
            score = sum(1 for word in response_words if word in sentence_words)
            if score > best_score:
                best_score = score
                best = sentence.strip()

        return best[:max_length] + "..." if len(best) > max_length else best
