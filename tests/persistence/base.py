import shutil
import unittest
from pathlib import Path
from uuid import uuid4

from ai_chat_backend.attachments.uploads import register_upload
from ai_chat_backend.persistence import Attachment, ChatRepository, ChatStore, EventEmitter, LocalBlobStorage


PROJECT_ROOT = Path(__file__).resolve().parents[2]

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image-payload"


class ChatStoreTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp_dir = PROJECT_ROOT / ".test-artifacts" / f"{self.__class__.__name__.lower()}-{uuid4().hex}"
        self._tmp_dir.mkdir(parents=True, exist_ok=True)
        self._store = ChatStore(str(self._tmp_dir / "chat.db"))
        self._events = EventEmitter(self._store)
        self._repo = ChatRepository(self._store, self._events)
        self._blobs = LocalBlobStorage(str(self._tmp_dir / "uploads"))

    def tearDown(self) -> None:
        self._store.close()
        shutil.rmtree(self._tmp_dir, ignore_errors=True)

    def _upload(
        self,
        name: str = "cat.png",
        mime_type: str = "image/png",
        data: bytes = PNG_BYTES,
    ) -> Attachment:
        return register_upload(self._repo, self._blobs, data, name, mime_type)

    def _event_types(self, session_id: str) -> list[str]:
        return [event["type"] for event in self._events.list_events(session_id)]
