"""Chunking for chat replies that exceed Telegram's message size."""

MAX_MESSAGE_LENGTH = 4096


def split_message(text: str, max_len: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """Split *text* into chunks of at most *max_len* characters.

    Cuts prefer the last newline in the second half of a chunk; the newline
    itself is dropped.
    """
    if len(text) <= max_len:
        return [text]

    chunks = []
    while len(text) > max_len:
        cut = text.rfind("\n", max_len // 2, max_len)
        if cut == -1:
            chunks.append(text[:max_len])
            text = text[max_len:]
        else:
            chunks.append(text[:cut])
            text = text[cut + 1:]
    if text:
        chunks.append(text)
    return chunks
