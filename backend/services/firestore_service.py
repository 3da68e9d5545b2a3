import asyncio
import os
from typing import Optional, Dict, Any

from models.game import HistoryRecord
from config import settings


class FirestoreService:
    """
    Store behind the history sink and the settings provider.

    Two kinds of document only: one `game_history` document per finished game
    and the `settings/game_settings` overrides document. The sync client runs
    in the default executor so callers can await it from the event loop.
    """

    def __init__(self):
        if settings.firestore_emulator_host:
            os.environ["FIRESTORE_EMULATOR_HOST"] = settings.firestore_emulator_host
        # Imported here: the engine runs without GCP packages or credentials
        from google.cloud import firestore
        self.db = firestore.Client(project=settings.google_cloud_project or None)

    def _run(self, fn):
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(None, fn)

    async def append_history(self, record: HistoryRecord):
        data = record.model_dump(mode="json")
        ref = self.db.collection("game_history").document(record.id)
        await self._run(lambda: ref.set(data))

    async def get_game_settings(self) -> Optional[Dict[str, Any]]:
        ref = self.db.collection("settings").document("game_settings")
        doc = await self._run(ref.get)
        return doc.to_dict() if doc.exists else None


_firestore_service: Optional["FirestoreService"] = None


def get_firestore_service() -> "FirestoreService":
    """Created on first use when USE_FIRESTORE is set."""
    global _firestore_service
    if _firestore_service is None:
        _firestore_service = FirestoreService()
    return _firestore_service
