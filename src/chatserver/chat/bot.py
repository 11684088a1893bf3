"""
Scripted bot replies.

Every chat line a client sends gets one private reply from the bot. The
lookup is deliberately simple: normalize the text, then walk an ordered
list of (keyword, response) pairs and return the first response whose
keyword appears anywhere in the text.

    "What IS Java???"  →  "what is java"  →  matches "what is java"
    "oh hi there"      →  "oh hi there"   →  matches "hi"

Order matters. "hello" is checked before "hi", and "hi" also matches
inside longer words ("this", "which"). Earliest declared wins.
"""

import random
import re
from datetime import datetime
from typing import Callable, Optional, Sequence, Tuple


TIME_PLACEHOLDER = "{now}"
TIME_FORMAT = "%a %b %d %H:%M:%S %Z %Y"

RESPONSES: Tuple[Tuple[str, str], ...] = (
    ("what is java", "Bot: Java is a high-level, object-oriented programming language."),
    ("who invented java", "Bot: Java was invented by James Gosling at Sun Microsystems."),
    ("what is socket programming", "Bot: Socket programming allows communication between computers using TCP/IP."),
    ("what is multithreading", "Bot: Multithreading allows multiple threads to run concurrently in a program."),
    ("hello", "Bot: Hello! How are you?"),
    ("hi", "Bot: Hello! How are you?"),
    ("how are you", "Bot: I'm doing great! Thanks for asking."),
    ("time", "Bot: Current server time is " + TIME_PLACEHOLDER),
    ("bye", "Bot: Goodbye! Have a nice day!"),
)

FALLBACK_RESPONSES: Tuple[str, ...] = (
    "Bot: Sorry, I don't understand. Can you rephrase?",
    "Bot: Hmm, I am not sure about that.",
    "Bot: Interesting! Tell me more.",
)

_NOT_ALLOWED = re.compile(r"[^a-z0-9 ]")


def _local_now() -> datetime:
    """Current local time with its timezone attached, so %Z renders."""
    return datetime.now().astimezone()


def normalize(text: str) -> str:
    """Lowercase and drop everything outside [a-z0-9 ]."""
    return _NOT_ALLOWED.sub("", text.strip().lower())


class ReplyGenerator:
    """
    Maps a chat line to the bot's reply.

    Stateless apart from its random source, so one instance is shared by
    every session thread. random.Random methods are safe to call from
    several threads.

    Args:
        responses: Ordered (keyword, response) pairs. Keywords are matched
                   against normalized text, so write them in lowercase.
        fallbacks: Responses to pick from when nothing matches.
        rng: Random source for fallbacks (seed it in tests).
        clock: Returns the current timezone-aware time for the "{now}"
               placeholder.
    """

    def __init__(
        self,
        responses: Sequence[Tuple[str, str]] = RESPONSES,
        fallbacks: Sequence[str] = FALLBACK_RESPONSES,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = _local_now,
    ):
        if not fallbacks:
            raise ValueError("at least one fallback response is required")
        self.responses = tuple(responses)
        self.fallbacks = tuple(fallbacks)
        self._rng = rng or random.Random()
        self._clock = clock

    def match(self, text: str) -> Optional[str]:
        """Return the scripted response for text, or None if no keyword matches."""
        normalized = normalize(text)
        for keyword, response in self.responses:
            if keyword in normalized:
                return self._render(response)
        return None

    def reply(self, text: str) -> str:
        """Return the scripted response, or a random fallback."""
        response = self.match(text)
        if response is None:
            response = self._rng.choice(self.fallbacks)
        return response

    __call__ = reply

    def _render(self, response: str) -> str:
        if TIME_PLACEHOLDER in response:
            # Date.toString layout: "Mon Oct 19 18:22:05 UTC 2026"
            return response.replace(TIME_PLACEHOLDER, self._clock().strftime(TIME_FORMAT))
        return response


_default = ReplyGenerator()


def generate_reply(text: str) -> str:
    """Module-level shortcut using a shared default generator."""
    return _default.reply(text)
