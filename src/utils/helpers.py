"""
Helper Utilities
Formatting helpers shared by notifications and emails
"""


def format_currency(amount: float, currency: str = "INR") -> str:
    """
    Format amount as currency

    Args:
        amount: Amount to format
        currency: Currency code

    Returns:
        str: Formatted currency string
    """
    if currency == "INR":
        return f"₹{amount:,.2f}"
    return f"{currency} {amount:,.2f}"


def format_hours(hours: float) -> str:
    """Render a duration in hours as e.g. "2d 5.5h" or "3.0h" """
    if hours >= 24:
        days = int(hours // 24)
        return f"{days}d {hours - days * 24:.1f}h"
    return f"{hours:.1f}h"


def truncate_string(text: str, max_length: int = 100, suffix: str = "...") -> str:
    """
    Truncate string to max length

    Args:
        text: Text to truncate
        max_length: Maximum length
        suffix: Suffix to add if truncated

    Returns:
        str: Truncated string
    """
    if text is None or len(text) <= max_length:
        return text
    return text[:max_length - len(suffix)] + suffix
