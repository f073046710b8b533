"""
Image URL helpers
"""
from urllib.parse import unquote


IMAGE_SCHEME_PREFIX = "image://"
LOOPBACK_HOST = "127.0.0.1"


def fix_image_url(url: str, tvheadend_host: str) -> str:
    """
    Turn a Kodi thumbnail reference into a URL the remote can fetch.

    Kodi reports PVR thumbnails as percent-encoded `image://` wrappers around the
    URL it got from TVHeadend, which points at the loopback address when both run
    on the same box.

    Args:
        url: Thumbnail as reported by Kodi
        tvheadend_host: Host name of the TVHeadend server

    Returns:
        Decoded URL with the wrapper, the trailing slash and the loopback host replaced
    """
    if not url:
        return ""
    decoded = unquote(url)
    if decoded.startswith(IMAGE_SCHEME_PREFIX):
        decoded = decoded[len(IMAGE_SCHEME_PREFIX):]
    if tvheadend_host:
        decoded = decoded.replace(LOOPBACK_HOST, tvheadend_host)
    return decoded.rstrip("/")
