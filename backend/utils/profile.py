from typing import Any, Dict, Optional

# Highest quality first
_AVATAR_KEYS = ("profilePictureLarge", "profilePictureMedium", "profilePicture")


def pick_avatar_url(profile: Optional[Dict[str, Any]]) -> Optional[str]:
    """Best avatar URL from a live-feed user profile, or None if it is not an http(s) URL."""
    if not profile:
        return None
    for key in _AVATAR_KEYS:
        url = profile.get(key)
        if url:
            if isinstance(url, str) and url.startswith(("http://", "https://")):
                return url
            return None
    return None
