"""Tests for MembershipStore."""

from __future__ import annotations

import unittest
from unittest.mock import MagicMock

from mockfirestore import MockFirestore

from syncit.backend import DocumentStore
from syncit.errors import (
    NotFoundError,
    TransientNetworkError,
    ValidationError,
    WriteError,
)
from syncit.group.models import Member
from syncit.group.services import MembershipStore
from syncit.notifications import NotificationService
from tests.conftest import (
    event_doc,
    failing_store,
    group_doc,
    member_doc,
    seed_group,
    stored_group,
)


class TestMembershipStore(unittest.TestCase):
    def setUp(self) -> None:
        self.db = MockFirestore()
        self.notifications = MagicMock(spec=NotificationService)
        self.service = MembershipStore(
            DocumentStore(self.db), notifications=self.notifications
        )
        seed_group(
            self.db,
            1,
            group_doc(
                "A",
                members=[member_doc("A", role="admin"), member_doc("B", "pending")],
            ),
        )

    # Groups

    def test_create_group(self) -> None:
        result = self.service.create_group(
            {
                "name": "  Ski trip ",
                "description": "February",
                "admin": "A",
                "members": [
                    {"id": "A", "name": "Alice", "role": "admin", "status": "accepted"},
                    {"id": "C", "name": "Carol"},
                ],
            }
        )

        self.assertTrue(result.ok)
        group = result.value
        data = stored_group(self.db, group.id)
        self.assertEqual(data["name"], "Ski trip")
        self.assertEqual(data["admin"], "A")
        self.assertEqual(data["members"][1]["status"], "pending")
        self.assertEqual(data["members"][1]["role"], "member")
        self.assertIn("createdAt", data)

        self.notifications.send_group_invitations.assert_called_once()
        _, invitees, sender = self.notifications.send_group_invitations.call_args[0]
        self.assertEqual([m.id for m in invitees], ["C"])
        self.assertEqual(sender, "Alice")

    def test_create_group_ids_do_not_collide(self) -> None:
        data = {
            "name": "Twins",
            "admin": "A",
            "members": [{"id": "A", "role": "admin", "status": "accepted"}],
        }
        first = self.service.create_group(data).value
        second = self.service.create_group(data).value
        self.assertNotEqual(first.id, second.id)

    def test_create_group_rejects_bad_input_before_writing(self) -> None:
        store = MagicMock(spec=DocumentStore)
        service = MembershipStore(store)

        result = service.create_group({"name": "", "admin": "A", "members": []})

        self.assertFalse(result.ok)
        self.assertIsInstance(result.error, ValidationError)
        store.create.assert_not_called()

    def test_update_group_is_one_partial_write(self) -> None:
        store = DocumentStore(self.db)
        store.update = MagicMock(wraps=store.update)
        service = MembershipStore(store)

        result = service.update_group(
            1, {"name": "Renamed", "silent_notifications": True}
        )

        self.assertTrue(result.ok)
        store.update.assert_called_once_with(
            "groups", "1", {"name": "Renamed", "silentNotifications": True}
        )
        data = stored_group(self.db, 1)
        self.assertEqual(data["name"], "Renamed")
        self.assertEqual(len(data["members"]), 2)

    def test_update_group_unknown_field(self) -> None:
        result = self.service.update_group(1, {"owner": "B"})
        self.assertIsInstance(result.error, ValidationError)

    def test_update_group_admin_must_be_a_member(self) -> None:
        result = self.service.update_group(1, {"admin": "ghost"})

        self.assertIsInstance(result.error, ValidationError)
        self.assertEqual(stored_group(self.db, 1)["admin"], "A")

    def test_update_group_members_must_keep_the_admin(self) -> None:
        result = self.service.update_group(1, {"members": [member_doc("B")]})

        self.assertIsInstance(result.error, ValidationError)
        ids = [m["id"] for m in stored_group(self.db, 1)["members"]]
        self.assertEqual(ids, ["A", "B"])

    def test_update_group_hands_over_admin(self) -> None:
        result = self.service.update_group(
            1, {"admin": "B", "members": [member_doc("B"), member_doc("C")]}
        )

        self.assertTrue(result.ok)
        data = stored_group(self.db, 1)
        self.assertEqual(data["admin"], "B")
        self.assertEqual([m["id"] for m in data["members"]], ["B", "C"])

    def test_update_missing_group(self) -> None:
        result = self.service.update_group(404, {"name": "Ghost"})
        self.assertIsInstance(result.error, NotFoundError)
        self.assertEqual(result.error.status_code, 404)

    def test_delete_group(self) -> None:
        self.assertTrue(self.service.delete_group(1).ok)
        self.assertIsNone(DocumentStore(self.db).get("groups", "1"))

    def test_block_group_creator(self) -> None:
        self.assertTrue(self.service.block_group_creator(1).ok)
        self.assertTrue(stored_group(self.db, 1)["creatorBlocked"])

    def test_get_user_groups_uses_visibility_rule(self) -> None:
        seed_group(self.db, 2, group_doc("Z", members=[member_doc("Z", role="admin")]))
        seed_group(self.db, 3, group_doc("B"))

        ids = sorted(g.id for g in self.service.get_user_groups("B").value)

        self.assertEqual(ids, [1, 3])

    # Members

    def test_add_member_defaults_to_pending(self) -> None:
        result = self.service.add_member_to_group(1, {"id": "C", "name": "Carol"})

        self.assertTrue(result.ok)
        members = stored_group(self.db, 1)["members"]
        self.assertEqual(members[-1]["id"], "C")
        self.assertEqual(members[-1]["status"], "pending")
        self.assertEqual(members[-1]["role"], "member")
        self.notifications.send_group_invitations.assert_called_once()

    def test_add_member_does_not_deduplicate(self) -> None:
        self.service.add_member_to_group(1, Member(id="B", status="pending"))
        ids = [m["id"] for m in stored_group(self.db, 1)["members"]]
        self.assertEqual(ids, ["A", "B", "B"])

    def test_add_accepted_member_sends_no_invitation(self) -> None:
        self.service.add_member_to_group(1, {"id": "C", "status": "accepted"})
        self.notifications.send_group_invitations.assert_not_called()

    def test_add_member_requires_id(self) -> None:
        result = self.service.add_member_to_group(1, {"name": "Nobody"})
        self.assertIsInstance(result.error, ValidationError)

    def test_remove_member(self) -> None:
        result = self.service.remove_member_from_group(1, "B")
        self.assertTrue(result.value)
        ids = [m["id"] for m in stored_group(self.db, 1)["members"]]
        self.assertEqual(ids, ["A"])

    def test_admin_cannot_be_removed(self) -> None:
        result = self.service.remove_member_from_group(1, "A")

        self.assertIsInstance(result.error, ValidationError)
        ids = [m["id"] for m in stored_group(self.db, 1)["members"]]
        self.assertEqual(ids, ["A", "B"])

    def test_remove_absent_member_is_a_no_op(self) -> None:
        before = stored_group(self.db, 1)["members"]

        result = self.service.remove_member_from_group(1, "nobody")

        self.assertTrue(result.ok)
        self.assertFalse(result.value)
        self.assertEqual(stored_group(self.db, 1)["members"], before)

    def test_accepting_an_invitation(self) -> None:
        result = self.service.update_member_status(1, "B", "accepted")

        self.assertTrue(result.ok)
        members = {m["id"]: m for m in stored_group(self.db, 1)["members"]}
        self.assertEqual(members["B"]["status"], "accepted")
        self.assertEqual(members["A"]["status"], "accepted")
        visible_a = [g.id for g in self.service.get_user_groups("A").value]
        visible_b = [g.id for g in self.service.get_user_groups("B").value]
        self.assertEqual(visible_a, [1])
        self.assertEqual(visible_b, [1])

    def test_status_of_absent_member(self) -> None:
        result = self.service.update_member_status(1, "nobody", "accepted")
        self.assertIsInstance(result.error, NotFoundError)

    def test_invalid_status_transition(self) -> None:
        self.service.update_member_status(1, "B", "declined")
        result = self.service.update_member_status(1, "B", "accepted")
        self.assertIsInstance(result.error, ValidationError)

    def test_promote_keeps_admin_pointer(self) -> None:
        self.service.update_member_status(1, "B", "accepted")

        result = self.service.promote_member_to_admin(1, "B")

        self.assertEqual(result.value.role, "admin")
        data = stored_group(self.db, 1)
        self.assertEqual(data["admin"], "A")
        self.assertEqual([m["role"] for m in data["members"]], ["admin", "admin"])

    # Events

    def test_add_event_stamps_flags(self) -> None:
        seed_group(
            self.db,
            2,
            group_doc(
                "A",
                members=[
                    member_doc("A", role="admin"),
                    member_doc("B"),
                    member_doc("C"),
                ],
            ),
        )

        result = self.service.add_event_to_group(
            2, {"date": "2024-06-01", "type": "all-day", "notes": "Picnic"}, "A"
        )

        self.assertTrue(result.ok)
        event = stored_group(self.db, 2)["events"][0]
        self.assertEqual(event["isNewForUser"], {"B": True, "C": True})
        self.assertEqual(event["createdBy"], "A")
        self.assertEqual(event["user"], "User A")
        self.assertIn("createdAt", event)
        self.notifications.send_new_event.assert_called_once()

    def test_add_event_rejects_bad_type(self) -> None:
        result = self.service.add_event_to_group(
            1, {"date": "2024-06-01", "type": "brunch"}, "A"
        )
        self.assertIsInstance(result.error, ValidationError)
        self.assertEqual(stored_group(self.db, 1)["events"], [])

    def test_event_ids_are_unique(self) -> None:
        event = {"date": "2024-06-01", "type": "morning"}
        first = self.service.add_event_to_group(1, dict(event), "A").value
        second = self.service.add_event_to_group(1, dict(event), "A").value
        self.assertNotEqual(first.id, second.id)

    def test_remove_event(self) -> None:
        seed_group(self.db, 2, group_doc("A", events=[event_doc(7, "A")]))
        self.assertTrue(self.service.remove_event_from_group(2, 7).value)
        self.assertEqual(stored_group(self.db, 2)["events"], [])
        self.assertFalse(self.service.remove_event_from_group(2, 7).value)

    # Backend failures

    def test_transient_failure_is_returned_not_raised(self) -> None:
        store = failing_store(TransientNetworkError(), self.db)
        service = MembershipStore(store)

        result = service.remove_member_from_group(1, "B")

        self.assertFalse(result.ok)
        self.assertIsInstance(result.error, TransientNetworkError)
        self.assertFalse(result.optimistic)

    def test_write_failure(self) -> None:
        store = failing_store(WriteError("rejected"), self.db)
        service = MembershipStore(store)

        result = service.delete_group(1)

        self.assertIsInstance(result.error, WriteError)
        with self.assertRaises(WriteError):
            result.unwrap()


if __name__ == "__main__":
    unittest.main()
