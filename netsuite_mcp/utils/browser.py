"""Best-effort browser launcher used to start the OAuth flow."""

import logging
import webbrowser

logger = logging.getLogger(__name__)


def open_browser(url: str) -> bool:
    """Open a URL in the user's default browser.

    Failure is not fatal: the authorization URL is always logged so the user
    can open it by hand.

    Args:
        url: URL to open

    Returns:
        True if a browser was launched, False otherwise
    """
    try:
        opened = webbrowser.open(url)
    except webbrowser.Error as e:
        logger.warning(f"Could not auto-open browser: {e}")
        opened = False

    if opened:
        logger.info("🌐 Browser opened automatically")
    else:
        logger.warning("Could not auto-open browser. Please open the URL manually:")
        logger.warning(url)
    return opened
