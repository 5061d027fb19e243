"""Split policy documents into bounded, overlapping chunks.

Cuts prefer natural boundaries: a paragraph break, then the end of a
sentence, then a line break. Without any boundary after the chunk start the
chunk is hard-cut at the maximum size.
"""

DEFAULT_CHUNK_SIZE = 800
DEFAULT_CHUNK_OVERLAP = 80

# (separator, offset added to the match position to get the cut position)
_BOUNDARIES: tuple[tuple[str, int], ...] = (
    ("\n\n", 0),
    (". ", 1),
    ("\n", 0),
)


def _find_boundary(text: str, start: int, end: int) -> int | None:
    """Return the cut position of the nearest boundary at or before ``end``.

    Only boundaries strictly after ``start`` count, so the chunk never ends
    up empty.

    Args:
        text (str): The full text.
        start (int): Start of the current chunk.
        end (int): Candidate (hard) end of the current chunk.

    Returns:
        int | None: The cut position, or None if no boundary was found.
    """
    for separator, offset in _BOUNDARIES:
        # the cut position may never pass the hard end
        index = text.rfind(separator, start + 1, end + len(separator) - offset)
        if index > start:
            return index + offset
    return None


def split_text(text: str, max_size: int = DEFAULT_CHUNK_SIZE, overlap: int = DEFAULT_CHUNK_OVERLAP) -> list[str]:
    """Split a document's text into overlapping chunks.

    Args:
        text (str): The full document text.
        max_size (int): Maximum chunk length in characters.
        overlap (int): Characters shared by consecutive chunks. Must be smaller than max_size.

    Returns:
        list[str]: Ordered list of trimmed, non-empty chunks.

    Raises:
        ValueError: If the size parameters are invalid.
    """
    if max_size <= 0 or overlap < 0 or overlap >= max_size:
        raise ValueError(f"Invalid chunk parameters: max_size={max_size}, overlap={overlap}")
    if not text or not text.strip():
        return []
    if len(text) <= max_size:
        return [text.strip()]

    chunks: list[str] = []
    length = len(text)
    start = 0
    while start < length:
        end = min(start + max_size, length)
        if end < length:
            boundary = _find_boundary(text, start, end)
            if boundary is not None:
                end = boundary

        piece = text[start:end].strip()
        if piece:
            chunks.append(piece)

        if end >= length:
            break
        # always move forward, even if the cut landed inside the overlap window
        start = max(start + 1, end - overlap)
    return chunks
