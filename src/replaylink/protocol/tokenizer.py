# src/replaylink/protocol/tokenizer.py

"""Splitting of replay logs and protocol lines into tokens."""

DELIMITER = "|"

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


def split_log_lines(raw_log: str | None) -> list[str]:
    """Split a full replay log into non-blank, right-stripped lines."""
    if not raw_log:
        return []
    lines = (line.rstrip() for line in raw_log.split("\n"))
    return [line for line in lines if line]


def tokenize_line(line: str | None) -> list[str]:
    """Split one protocol line on the delimiter.

    The wire format starts every line with a delimiter, which would otherwise
    produce an empty first token; that token is dropped. Never raises.

    >>> tokenize_line("|switch|p1a: Amoonguss|Amoonguss, L50, F|100/100")
    ['switch', 'p1a: Amoonguss', 'Amoonguss, L50, F', '100/100']
    >>> tokenize_line("turn|3")
    ['turn', '3']
    >>> tokenize_line("")
    []
    """
    if not line:
        return []
    parts = line.split(DELIMITER)
    if parts[0] == "":
        parts = parts[1:]
    return parts


def token_at(tokens: list[str], index: int) -> str | None:
    """Token at ``index`` or None when the line is too short."""
    return tokens[index] if 0 <= index < len(tokens) else None


def parse_int(value: str | int | None) -> int | None:
    """Integer value of a numeric token.

    Returns None for blank or malformed input, and for numbers outside the
    signed 64-bit range an INTEGER column can hold.

    >>> parse_int(" 1718000060 ")
    1718000060
    >>> parse_int("1e30") is None
    True
    """
    if value is None:
        return None
    if isinstance(value, int):
        number = value
    else:
        text = value.strip()
        try:
            number = int(text) if text.lstrip("+-").isdigit() else int(float(text))
        except (ValueError, OverflowError):
            return None
    if not INT64_MIN <= number <= INT64_MAX:
        return None
    return number
