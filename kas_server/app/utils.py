# kas_server/app/utils.py
import random
import re

KAS_ID_RE = re.compile(r"^K-\d{3}-\d{6}$")

_rng = random.SystemRandom()


def format_kas_id(digits: str, prefix: str = "K") -> str:
    return f"{prefix}-{digits[:3]}-{digits[3:9]}"


def generate_kas_id(rng: random.Random = _rng) -> str:
    """
    Human-facing correlation id, e.g. K-042-918273.
    Nine random digits, not checked against existing ids.
    """
    digits = "".join(str(rng.randrange(10)) for _ in range(9))
    return format_kas_id(digits)
