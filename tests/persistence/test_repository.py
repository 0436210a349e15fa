from tests.persistence.base import ChatStoreTestCase


class ChatRepositoryTests(ChatStoreTestCase):
    def setUp(self) -> None:
        super().setUp()
        self._session = self._repo.create_session("alice", title="Chat", capability="text_to_text")

    def test_create_session_starts_empty(self) -> None:
        session = self._repo.get_session(self._session.id)
        self.assertIsNotNone(session)
        self.assertEqual("alice", session.owner_id)
        self.assertEqual(0, session.message_count)
        self.assertFalse(session.favorite)
        self.assertFalse(session.protected)
        self.assertEqual(["session.created"], self._event_types(self._session.id))

    def test_save_message_assigns_seq_and_increments_count(self) -> None:
        first = self._repo.save_message(self._session.id, "user", "hello")
        second = self._repo.save_message(self._session.id, "assistant", "hi")

        self.assertEqual(1, first.seq)
        self.assertEqual(2, second.seq)
        session = self._repo.get_session(self._session.id)
        self.assertEqual(2, session.message_count)
        self.assertEqual(second.created_at, session.last_activity_at)
        self.assertEqual(
            ["session.created", "message.appended", "message.appended"],
            self._event_types(self._session.id),
        )

    def test_soft_delete_decrements_count_once(self) -> None:
        message = self._repo.save_message(self._session.id, "user", "hello")
        self._repo.save_message(self._session.id, "assistant", "hi")

        self.assertTrue(self._repo.soft_delete_message(message.id))
        self.assertFalse(self._repo.soft_delete_message(message.id))

        session = self._repo.get_session(self._session.id)
        self.assertEqual(1, session.message_count)
        self.assertEqual(1, self._repo.count_live_messages(self._session.id))
        self.assertEqual(1, len(self._repo.list_messages(self._session.id)))
        self.assertEqual(2, len(self._repo.list_messages(self._session.id, include_deleted=True)))

    def test_bind_attachment_only_succeeds_while_unbound(self) -> None:
        first = self._repo.save_message(self._session.id, "user", "one")
        second = self._repo.save_message(self._session.id, "user", "two")
        attachment = self._upload()

        self.assertTrue(self._repo.bind_attachment(attachment.id, first.id))
        self.assertFalse(self._repo.bind_attachment(attachment.id, second.id))
        self.assertFalse(self._repo.bind_attachment(attachment.id, first.id))

        stored = self._repo.get_attachment(attachment.id)
        self.assertEqual(first.id, stored.message_id)
        self.assertEqual(1, self._event_types(self._session.id).count("attachment.bound"))

    def test_list_attachments_is_oldest_first(self) -> None:
        message = self._repo.save_message(self._session.id, "user", "pics")
        newer = self._upload("b.png")
        older = self._upload("a.png")
        self._store.execute("UPDATE attachments SET created_at = '2020-01-01T00:00:00+00:00' WHERE id = ?", (older.id,))
        self._store.commit()
        self._repo.bind_attachment(newer.id, message.id)
        self._repo.bind_attachment(older.id, message.id)

        ids = [a.id for a in self._repo.list_attachments(message.id)]
        self.assertEqual([older.id, newer.id], ids)
        loaded = self._repo.get_message(message.id)
        self.assertEqual([older.id, newer.id], [a.id for a in loaded.attachments])

    def test_find_unbound_by_original_name_skips_bound(self) -> None:
        message = self._repo.save_message(self._session.id, "user", "x")
        bound = self._upload("photo.png")
        free = self._upload("photo.png")
        self._upload("other.png")
        self._repo.bind_attachment(bound.id, message.id)

        found = self._repo.find_unbound_attachments_by_original_name("photo.png")
        self.assertEqual([free.id], [a.id for a in found])
        self.assertEqual(2, self._repo.count_unbound_attachments())

    def test_list_sessions_filters_owner_and_orders_by_activity(self) -> None:
        older = self._repo.create_session("alice", title="Older", capability="text_to_text")
        self._repo.create_session("bob", title="Bob's", capability="text_to_text")
        self._store.execute(
            "UPDATE sessions SET last_activity_at = '2000-01-01T00:00:00+00:00' WHERE id = ?",
            (older.id,),
        )
        self._store.commit()
        self._repo.save_message(self._session.id, "user", "bump")

        sessions = self._repo.list_sessions("alice")
        self.assertEqual([self._session.id, older.id], [s.id for s in sessions])
        self.assertEqual(1, len(self._repo.list_sessions("alice", limit=1)))
        self.assertEqual([older.id], [s.id for s in self._repo.list_sessions("alice", limit=1, offset=1)])

    def test_delete_session_removes_bound_attachments(self) -> None:
        message = self._repo.save_message(self._session.id, "user", "x")
        attachment = self._upload()
        loose = self._upload("loose.png")
        self._repo.bind_attachment(attachment.id, message.id)

        removed = self._repo.delete_session(self._session.id)

        self.assertEqual([attachment.id], [a.id for a in removed])
        self.assertIsNone(self._repo.get_session(self._session.id))
        self.assertIsNone(self._repo.get_message(message.id))
        self.assertIsNone(self._repo.get_attachment(attachment.id))
        self.assertEqual([], self._repo.find_unbound_attachments_by_original_name("cat.png"))
        self.assertIsNotNone(self._repo.get_attachment(loose.id))
