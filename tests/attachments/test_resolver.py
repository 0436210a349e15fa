from ai_chat_backend.attachments.resolver import (
    DEFAULT_MATCHERS,
    AttachmentResolver,
    match_by_file_id,
    match_by_file_name,
    match_unbound_by_original_name,
)
from ai_chat_backend.persistence import Attachment, ChatRepository, ClientAttachmentRef
from tests.persistence.base import ChatStoreTestCase


class _SnapshotRepository(ChatRepository):
    """Serves the unbound pool as it was read before a competing bind."""

    def __init__(self, store, events, snapshot: list[Attachment]) -> None:
        super().__init__(store, events)
        self._snapshot = snapshot

    def find_unbound_attachments_by_original_name(self, original_name: str) -> list[Attachment]:
        return [a for a in self._snapshot if a.original_name == original_name]


class AttachmentResolverTests(ChatStoreTestCase):
    def setUp(self) -> None:
        super().setUp()
        self._session = self._repo.create_session("alice", title="t", capability="image_to_text")
        self._message = self._repo.save_message(self._session.id, "user", "look")
        self._resolver = AttachmentResolver(self._repo)

    def test_matcher_order_is_key_then_name_then_original(self) -> None:
        self.assertEqual(
            (match_by_file_id, match_by_file_name, match_unbound_by_original_name),
            DEFAULT_MATCHERS,
        )

    def test_file_id_binds_once_and_is_idempotent(self) -> None:
        attachment = self._upload()
        ref = ClientAttachmentRef(file_id=attachment.storage_key)

        first = self._resolver.resolve(self._message.id, [ref])
        second = self._resolver.resolve(self._message.id, [ref])

        self.assertEqual(1, first.bound_count)
        self.assertEqual([], first.unresolved)
        self.assertEqual(1, second.bound_count)
        self.assertEqual([], second.unresolved)
        self.assertEqual(self._message.id, self._repo.get_attachment(attachment.id).message_id)
        self.assertEqual(1, self._event_types(self._session.id).count("attachment.bound"))

    def test_repeated_ref_in_one_call_counts_once(self) -> None:
        attachment = self._upload()
        ref = ClientAttachmentRef(file_id=attachment.storage_key)

        result = self._resolver.resolve(
            self._message.id,
            [ref, ref, ClientAttachmentRef(file_name=attachment.storage_key)],
        )

        self.assertEqual(1, result.bound_count)
        self.assertEqual([attachment.id], [a.id for a in result.bound])
        self.assertEqual([], result.unresolved)

    def test_file_name_matches_storage_key(self) -> None:
        attachment = self._upload()
        result = self._resolver.resolve(self._message.id, [ClientAttachmentRef(file_name=attachment.storage_key)])

        self.assertEqual(1, result.bound_count)
        self.assertEqual(attachment.id, result.bound[0].id)
        self.assertEqual(self._message.id, result.bound[0].message_id)

    def test_original_name_picks_oldest_unbound(self) -> None:
        newer = self._upload("holiday.png")
        older = self._upload("holiday.png")
        self._store.execute(
            "UPDATE attachments SET created_at = '2020-01-01T00:00:00+00:00' WHERE id = ?",
            (older.id,),
        )
        self._store.commit()

        result = self._resolver.resolve(self._message.id, [ClientAttachmentRef(original_name="holiday.png")])

        self.assertEqual(1, result.bound_count)
        self.assertEqual(self._message.id, self._repo.get_attachment(older.id).message_id)
        self.assertIsNone(self._repo.get_attachment(newer.id).message_id)

    def test_file_id_takes_precedence_over_original_name(self) -> None:
        by_key = self._upload("a.png")
        by_name = self._upload("b.png")
        ref = ClientAttachmentRef(file_id=by_key.storage_key, original_name="b.png")

        self._resolver.resolve(self._message.id, [ref])

        self.assertEqual(self._message.id, self._repo.get_attachment(by_key.id).message_id)
        self.assertIsNone(self._repo.get_attachment(by_name.id).message_id)

    def test_attachment_bound_elsewhere_is_unresolved_and_untouched(self) -> None:
        attachment = self._upload()
        other = self._repo.save_message(self._session.id, "user", "other")
        self._repo.bind_attachment(attachment.id, other.id)
        ref = ClientAttachmentRef(file_id=attachment.storage_key)

        result = self._resolver.resolve(self._message.id, [ref])

        self.assertEqual(0, result.bound_count)
        self.assertEqual([ref], result.unresolved)
        self.assertEqual(other.id, self._repo.get_attachment(attachment.id).message_id)

    def test_unknown_refs_are_reported_not_raised(self) -> None:
        attachment = self._upload()
        refs = [
            ClientAttachmentRef(file_id="nope.png"),
            ClientAttachmentRef(original_name="missing.png"),
            ClientAttachmentRef(file_id=attachment.storage_key),
        ]

        result = self._resolver.resolve(self._message.id, refs)

        self.assertEqual(1, result.bound_count)
        self.assertEqual(refs[:2], result.unresolved)

    def test_racing_resolutions_on_original_name_bind_once(self) -> None:
        attachment = self._upload("shared.png")
        other_message = self._repo.save_message(self._session.id, "user", "me too")
        pool = self._repo.find_unbound_attachments_by_original_name("shared.png")
        ref = ClientAttachmentRef(original_name="shared.png")

        winner = AttachmentResolver(_SnapshotRepository(self._store, self._events, pool))
        loser = AttachmentResolver(_SnapshotRepository(self._store, self._events, pool))
        won = winner.resolve(self._message.id, [ref])
        lost = loser.resolve(other_message.id, [ref])

        self.assertEqual(1, won.bound_count)
        self.assertEqual(0, lost.bound_count)
        self.assertEqual([ref], lost.unresolved)
        self.assertEqual(self._message.id, self._repo.get_attachment(attachment.id).message_id)

    def test_matchers_without_hint_do_not_query(self) -> None:
        empty = ClientAttachmentRef()
        for matcher in DEFAULT_MATCHERS:
            with self.subTest(matcher=matcher.__name__):
                self.assertEqual((None, False), matcher(self._repo, empty))

    def test_client_ref_from_dict_reads_camel_case(self) -> None:
        ref = ClientAttachmentRef.from_dict(
            {"fileId": " k.png ", "fileName": "", "originalName": "cat.png", "fileType": "image/png"}
        )
        self.assertEqual(ClientAttachmentRef(file_id="k.png", file_name=None, original_name="cat.png"), ref)
