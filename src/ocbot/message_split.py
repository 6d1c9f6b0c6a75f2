"""Message splitting for outbound chat text.

Provides:
  - split_message(): splits long text into chunks of at most ``max_length``
    characters (default 1900), preferring newline, then space boundaries.
  - labeled_segments(): split and prefix the first chunk with a role label.

The soft limit leaves headroom under HARD_LIMIT for the role label and
markup added when a chunk is posted.
"""

SOFT_LIMIT = 1900
HARD_LIMIT = 2000


def _find_boundary(text: str, max_length: int) -> int:
    """Index to cut at: last newline, else last space, else max_length.

    A boundary in the first half of the window is rejected so chunks do
    not degenerate into slivers.
    """
    half = max_length / 2
    for sep in ("\n", " "):
        idx = text.rfind(sep, 0, max_length + 1)
        if idx != -1 and idx >= half:
            return idx
    return max_length


def split_message(text: str, max_length: int = SOFT_LIMIT) -> list[str]:
    """Split a message into chunks that fit the per-message limit.

    Whitespace at a cut is dropped from the start of the next chunk;
    otherwise the chunks concatenate back to the input.
    """
    if len(text) <= max_length:
        return [text]

    chunks: list[str] = []
    remaining = text
    while remaining:
        if len(remaining) <= max_length:
            chunks.append(remaining)
            break
        cut = _find_boundary(remaining, max_length)
        chunks.append(remaining[:cut])
        remaining = remaining[cut:].lstrip()
    return chunks


def labeled_segments(
    label: str, text: str, max_length: int = SOFT_LIMIT
) -> list[str]:
    """Split text and prefix the first chunk with ``label``.

    Returns [] for empty or whitespace-only text.
    """
    if not text.strip():
        return []
    chunks = split_message(text, max_length)
    chunks[0] = f"{label}\n{chunks[0]}"
    return chunks
