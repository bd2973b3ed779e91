"""
Mention detection for AgentNetwork messages.

A mention is a whitespace-separated token starting with ``@``. Trailing
punctuation is ignored so that "thanks @alice." still addresses ``alice``.
Agent names are compared with ``name_key``, the same fold the registry uses.
"""

MENTION_PREFIX = "@"
TRAILING_PUNCTUATION = ".,;:!?)]}\"'"


def name_key(name: str) -> str:
    """Case-insensitive comparison key for agent and participant names."""
    return name.casefold()


def extract_mentions(text: str) -> list[str]:
    """Return every mentioned name in ``text``, in order, duplicates kept."""
    mentions = []
    for word in text.split():
        if not word.startswith(MENTION_PREFIX):
            continue
        name = word[len(MENTION_PREFIX):].rstrip(TRAILING_PUNCTUATION)
        if name:
            mentions.append(name)
    return mentions


def count_mentions(text: str, agent_name: str) -> int:
    target = name_key(agent_name)
    return sum(1 for name in extract_mentions(text) if name_key(name) == target)
