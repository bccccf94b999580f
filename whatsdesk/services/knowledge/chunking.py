"""Word-window chunking and lexical relevance scoring."""

# Results scoring at or below this are not returned by search
RELEVANCE_THRESHOLD = 0.1


def chunk_text(text: str, chunk_size: int = 500, overlap: int = 50) -> list[str]:
    """Split text into chunks with overlap.

    Windows of ``chunk_size`` whitespace-separated words advance by
    ``chunk_size - overlap`` words. Dropping the first ``overlap`` words of
    every chunk after the first gives back the original word sequence.
    """
    if chunk_size <= 0 or overlap < 0 or overlap >= chunk_size:
        raise ValueError(f"Invalid chunking parameters: size={chunk_size}, overlap={overlap}")

    words = text.split()
    chunks = []

    for i in range(0, len(words), chunk_size - overlap):
        chunk = " ".join(words[i:i + chunk_size])
        if chunk.strip():
            chunks.append(chunk)

    return chunks


def query_terms(query: str) -> list[str]:
    return query.lower().split()


def relevance_score(terms: list[str], text: str) -> float:
    """Lexical score of ``text`` against lowercase query ``terms``.

    For each term, the fraction of the text's words that contain the term
    or are contained in it; fractions are summed and capped at 1.0.
    """
    words = text.lower().split()
    if not words or not terms:
        return 0.0

    score = 0.0
    for term in terms:
        matches = sum(1 for word in words if term in word or word in term)
        score += matches / len(words)

    return min(score, 1.0)
