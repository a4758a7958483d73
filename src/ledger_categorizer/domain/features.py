import re

# (exclusive upper bound, label); anything above the last bound is "1000+"
AMOUNT_BUCKETS: tuple[tuple[float, str], ...] = (
    (10, "0-10"),
    (25, "10-25"),
    (50, "25-50"),
    (100, "50-100"),
    (250, "100-250"),
    (500, "250-500"),
    (1000, "500-1000"),
)
TOP_AMOUNT_BUCKET = "1000+"

MIN_WORD_LENGTH = 3

_WORD_RE = re.compile(r"\b[a-z]+\b")


def extract_words(text: str | None) -> list[str]:
    """Case-folded alphabetic tokens of at least three letters, in order, repeats kept."""
    if not text:
        return []
    return [word for word in _WORD_RE.findall(text.casefold()) if len(word) >= MIN_WORD_LENGTH]


def normalize_counter_account(value: str | None) -> str | None:
    if not value or not value.strip():
        return None
    return value.upper().replace(" ", "")


def amount_bucket(amount: float) -> str:
    absolute = abs(amount)
    for upper, label in AMOUNT_BUCKETS:
        if absolute < upper:
            return label
    return TOP_AMOUNT_BUCKET
