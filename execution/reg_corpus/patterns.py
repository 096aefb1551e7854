"""
Pattern Definitions for the Regulation Corpus

All regex patterns, sentinels and word lists used by the parser, the
citation extractor and the retriever. Modules import from here instead of
defining patterns inline.
"""

import re

# =============================================================================
# Article Numbers
# =============================================================================

# Loose form used inside larger patterns: digits, optional letter suffix and
# any number of balanced parenthetical subdivisions ("5", "10a", "5(1)(a)").
ARTICLE_NUMBER = r"\d+[A-Za-z]*(?:\([^()\s]{1,6}\))*"

# Strict form a captured number must satisfy to be kept.
VALID_ARTICLE_NUMBER = re.compile(
    r"^\d{1,4}[a-z]{0,2}(?:\((?:\d{1,3}[a-z]?|[a-z]{1,5})\))*$"
)

# Splits "5(1)(a)" into the article ("5") and its subdivision ("(1)(a)").
ARTICLE_SUBDIVISION = re.compile(r"^(?P<article>[^(]+)(?P<subdivision>(?:\(.*\))?)$")

# =============================================================================
# Document Structure (line-oriented)
# =============================================================================

ARTICLE_HEADER = re.compile(
    rf"^Article\s+(?P<number>{ARTICLE_NUMBER})"
    r"(?:\s*[-–—:.]\s*(?P<title>\S.*?))?\.?\s*$",
    re.IGNORECASE,
)

CHAPTER_HEADER = re.compile(r"^CHAPTER\s+(?P<label>[IVXLC]+)\b", re.IGNORECASE)

# Recitals open after "Whereas:" and close at the enacting formula.
RECITALS_OPENING = re.compile(r"^whereas\s*:?\s*$", re.IGNORECASE)
RECITALS_CLOSING = re.compile(r"^HA(?:VE|S)\s+ADOPTED\b", re.IGNORECASE)
RECITAL_MARKER = re.compile(r"^\((?P<ordinal>\d+)\)\s*(?P<rest>.*)$")
RECITAL_ORDINAL = re.compile(r"\d{1,5}", re.ASCII)

# A line under this length without a trailing full stop, directly after a
# bare "Article N" header, is that article's title.
MAX_TITLE_LENGTH = 100

# =============================================================================
# Definitions Article
# =============================================================================

DEFINITIONS_TITLE_KEYWORD = "definition"

# (N) 'term' [or 'alias'|of the ...] means[,:;] definition ... (N+1) 'next'
DEFINITION_ENTRY = re.compile(
    r"\((\d+)\)\s*'([^']+)'(?:[^(]*?)means?[,:;]?\s+(.+?)(?=\(\d+\)\s*'|$)"
)

CURLY_QUOTES = re.compile("[‘’“”]")

MIN_DEFINITION_LENGTH = 10

# =============================================================================
# Citation Patterns (ordered most to least specific)
# =============================================================================

_CITED_ARTICLE = rf"\bArticle\s+(?P<number>{ARTICLE_NUMBER})(?![\w(])"

FULLY_QUALIFIED_CITATION = re.compile(
    _CITED_ARTICLE
    + r"\s+of\s+(?:the\s+)?"
    r"(?P<instrument>Regulation|Directive|Decision)\s+"
    r"(?:\((?:EU|EC|EEC|Euratom)\)\s+)?"
    r"(?:No\.?\s+)?"
    r"(?P<designation>\d{1,4}/\d{1,4}(?:/(?:EU|EC|EEC|Euratom))?)"
)

SELF_CITATION = re.compile(
    _CITED_ARTICLE + r"\s+of\s+this\s+(?:Regulation|Directive|Decision)\b"
)

BARE_CITATION = re.compile(_CITED_ARTICLE + r"(?!\s+of\b)")


def short_form_citation(display_names) -> re.Pattern | None:
    """Build the short-form pattern ("Article 33 GDPR") for known names."""
    names = sorted(display_names, key=len, reverse=True)
    if not names:
        return None
    alternatives = "|".join(re.escape(name) for name in names)
    return re.compile(
        _CITED_ARTICLE
        + rf"\s+(?:of\s+)?(?:the\s+)?(?P<name>{alternatives})(?![\w-])"
    )


# Phrases that turn a citation into a precedence (override) relation.
OVERRIDE_PHRASES = re.compile(
    r"(?:by\s+way\s+of\s+derogation\s+from|in\s+derogation\s+of|"
    r"notwithstanding|shall\s+prevail\s+over)",
    re.IGNORECASE,
)
OVERRIDE_WINDOW = 80

# =============================================================================
# Retrieval
# =============================================================================

STOPWORDS = frozenset({
    "a", "an", "the", "and", "or", "but", "in", "on",
    "at", "to", "for", "of", "with", "by",
})

MIN_TOKEN_LENGTH = 3
MAX_QUERY_TOKENS = 32
CONJUNCTIVE_MAX_TOKENS = 3

SNIPPET_START = ">>>"
SNIPPET_END = "<<<"
SNIPPET_ELLIPSIS = "..."
SNIPPET_WORDS = 32

# =============================================================================
# Timeline Mentions (for requirement comparison)
# =============================================================================

TIMELINE_PATTERNS = [
    re.compile(r"\d+\s*hours?", re.IGNORECASE),
    re.compile(r"\d+\s*days?", re.IGNORECASE),
    re.compile(r"without\s+undue\s+delay", re.IGNORECASE),
    re.compile(r"immediately", re.IGNORECASE),
]
