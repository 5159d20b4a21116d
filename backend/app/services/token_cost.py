"""Render cost estimation.

Pure and deterministic: the hold endpoint and the credits check both call
estimate_cost(), so what a user is told they can afford is exactly what
gets held.

Formula:
- Base fee: 10 tokens per video
- Messages: 1 token per message
- Custom background: 10 tokens
- Monetization takeover: 20 tokens

Example: 90 messages + custom background + monetization
    10 + 90 + 10 + 20 = 130 tokens
"""

BASE_COST = 10
PER_MESSAGE_COST = 1
CUSTOM_BACKGROUND_COST = 10
MONETIZATION_COST = 20


def estimate_cost(
    message_count: int,
    has_custom_background: bool = False,
    uses_monetization: bool = False,
) -> int:
    """Return the token cost of a render job.

    Args:
        message_count: Number of chat messages in the video script.
        has_custom_background: Whether a non-default background is used.
        uses_monetization: Whether the monetization takeover is enabled.

    Returns:
        Tokens the render will cost.

    Raises:
        ValueError: If message_count is negative.
    """
    if message_count < 0:
        msg = f"message_count must not be negative. Got: {message_count}"
        raise ValueError(msg)

    cost = BASE_COST + message_count * PER_MESSAGE_COST
    if has_custom_background:
        cost += CUSTOM_BACKGROUND_COST
    if uses_monetization:
        cost += MONETIZATION_COST
    return cost
