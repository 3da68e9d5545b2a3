class GameNotFoundError(LookupError):
    """No game is present for the session (idle session, double stop)."""

    def __init__(self, session_id: str):
        super().__init__(f"No active game for session {session_id}")
        self.session_id = session_id


class InvalidGameConfigError(ValueError):
    """Start parameters were rejected before any state was touched."""
