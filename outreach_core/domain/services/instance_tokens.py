"""Instance token parsing.

The automation tool identifies a campaign run with an opaque token shaped
``date+person name+code1[+code2]``. Runs that share the derived name under
one account are the same logical campaign.
"""

from dataclasses import dataclass
from typing import Optional

TOKEN_DELIMITER = "+"


@dataclass(frozen=True)
class ParsedInstanceToken:
    """Pieces of an instance token."""

    date: Optional[str]
    person_name: Optional[str]
    campaign_name: str


def parse_instance_token(token: str) -> ParsedInstanceToken:
    """Split an instance token and derive its campaign name.

    Examples:
        ``"2025-10-14+Jane Doe+A008+M003"`` -> ``"A008+M003"``
        ``"2025-10-14+Jane Doe+A008"`` -> ``"A008"``
        ``"legacy-token"`` -> ``"legacy-token"``

    Args:
        token: Raw instance token.

    Returns:
        ParsedInstanceToken; the name falls back to the whole token when it
        carries no campaign code.
    """
    parts = token.split(TOKEN_DELIMITER)

    def part(index: int) -> Optional[str]:
        if index < len(parts) and parts[index]:
            return parts[index]
        return None

    code1 = part(2)
    code2 = part(3)
    if code1 and code2:
        campaign_name = f"{code1}{TOKEN_DELIMITER}{code2}"
    else:
        campaign_name = code1 or token

    return ParsedInstanceToken(
        date=part(0),
        person_name=part(1),
        campaign_name=campaign_name,
    )
