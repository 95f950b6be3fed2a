"""Maximum-length policy for extracted text."""


def truncate(text: str, max_length: int) -> str:
    """Cut ``text`` to at most ``max_length`` characters.

    Lengths count code points, so a multi-byte character is never split.
    A ``max_length`` below 1 (-1, and also 0) means unlimited.
    """
    if max_length < 1 or len(text) <= max_length:
        return text
    return text[:max_length]
