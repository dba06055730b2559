from __future__ import annotations

from .days import day_of_year
from .errors import ValidationError
from .models import SparkSettings

SPARK_MODES = ("prompt", "quote")
RANDOM_THEME = "random"

SPARK_PROMPTS: dict[str, list[str]] = {
    "gratitude": [
        "What made you smile today?",
        "Who helped you recently?",
        "Name 3 small wins.",
        "What comfort are you grateful for?",
    ],
    "reflection": [
        "What did today teach you?",
        "One thing you'd do differently?",
        "A moment you want to remember.",
        "What surprised you?",
    ],
    "creativity": [
        "Invent a tiny ritual.",
        "Write a 2-line poem.",
        "Describe a color without naming it.",
        "If today was a song…",
    ],
    "relationships": [
        "Who deserves a thank-you?",
        "A conversation to start.",
        "How did you show up for someone?",
        "Who energized you today?",
    ],
    "wellness": [
        "How does your body feel?",
        "Energy level 1–10 & why.",
        "What calmed you today?",
        "What boundary did you keep?",
    ],
}

SPARK_QUOTES: dict[str, list[str]] = {
    "gratitude": [
        "\"Gratitude is the healthiest of all human emotions.\" - Zig Ziglar",
        "\"He is a wise man who does not grieve for the things which he has not, "
        "but rejoices for those which he has.\" - Epictetus",
    ],
    "reflection": [
        "\"The unexamined life is not worth living.\" - Socrates",
        "\"We do not learn from experience... we learn from reflecting on experience.\" - John Dewey",
    ],
    "creativity": [
        "\"Creativity is intelligence having fun.\" - Albert Einstein",
        "\"You can't use up creativity. The more you use, the more you have.\" - Maya Angelou",
    ],
    "relationships": [
        "\"The best thing to hold onto in life is each other.\" - Audrey Hepburn",
        "\"A real friend is one who walks in when the rest of the world walks out.\" - Walter Winchell",
    ],
    "wellness": [
        "\"The greatest wealth is health.\" - Virgil",
        "\"Take care of your body. It's the only place you have to live.\" - Jim Rohn",
    ],
}


def bank_for_mode(mode: str) -> dict[str, list[str]]:
    return SPARK_QUOTES if mode == "quote" else SPARK_PROMPTS


def theme_names(mode: str = "prompt") -> list[str]:
    return list(bank_for_mode(mode))


def simple_hash(text: str) -> int:
    """32-bit signed polynomial hash over UTF-16 code units (h = h * 31 + unit)."""
    raw = text.encode("utf-16-le")
    value = 0
    for index in range(0, len(raw), 2):
        unit = raw[index] | (raw[index + 1] << 8)
        value = (value * 31 + unit) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return value


def resolve_theme(settings: SparkSettings, today: str) -> str:
    themes = theme_names(settings.mode)
    theme = settings.theme or RANDOM_THEME
    if theme == RANDOM_THEME:
        return themes[day_of_year(today) % len(themes)]
    return theme


def select_daily_prompt(settings: SparkSettings, today: str) -> str:
    if not settings.enabled:
        return ""
    theme = resolve_theme(settings, today)
    candidates = bank_for_mode(settings.mode).get(theme)
    if not candidates:
        return ""
    index = abs(simple_hash(today + theme)) % len(candidates)
    return candidates[index]


def validate_spark_changes(changes: dict[str, object]) -> dict[str, object]:
    allowed = {"daily_spark_enabled", "spark_mode", "daily_spark_theme"}
    unknown = sorted(set(changes) - allowed)
    if unknown:
        raise ValidationError(f"Unknown spark setting(s): {', '.join(unknown)}")

    cleaned: dict[str, object] = {}
    if "daily_spark_enabled" in changes:
        cleaned["daily_spark_enabled"] = bool(changes["daily_spark_enabled"])
    if "spark_mode" in changes:
        mode = str(changes["spark_mode"])
        if mode not in SPARK_MODES:
            raise ValidationError(f"Unsupported spark mode: {mode}")
        cleaned["spark_mode"] = mode
    if "daily_spark_theme" in changes:
        theme = str(changes["daily_spark_theme"])
        if theme != RANDOM_THEME and theme not in SPARK_PROMPTS:
            raise ValidationError(f"Unsupported spark theme: {theme}")
        cleaned["daily_spark_theme"] = theme
    return cleaned
