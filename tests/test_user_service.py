from __future__ import annotations

import unittest
from typing import Any, cast
from unittest.mock import MagicMock

from mockfirestore import MockFirestore

from syncit.backend import DocumentStore
from syncit.errors import TransientNetworkError
from syncit.group.services import GroupSession, MembershipStore
from syncit.user.services import (
    UserService,
    member_from_user,
    normalize_phone_number,
)
from tests.conftest import (
    failing_store,
    group_doc,
    make_session,
    member_doc,
    seed_group,
    stored_group,
)


class TestNormalizePhoneNumber(unittest.TestCase):
    def test_strips_formatting(self) -> None:
        self.assertIn("447926111222", normalize_phone_number("+44 (7926) 111-222"))

    def test_uk_national_and_international(self) -> None:
        self.assertEqual(
            normalize_phone_number("07926111222"), {"07926111222", "447926111222"}
        )
        self.assertEqual(
            normalize_phone_number("447926111222"), {"447926111222", "07926111222"}
        )

    def test_us_with_and_without_country_code(self) -> None:
        self.assertEqual(
            normalize_phone_number("+1 712-345-6789"), {"17123456789", "7123456789"}
        )
        self.assertEqual(
            normalize_phone_number("7123456789"), {"7123456789", "17123456789"}
        )

    def test_empty(self) -> None:
        self.assertEqual(normalize_phone_number(""), {""})


class TestUserService(unittest.TestCase):
    def setUp(self) -> None:
        self.db = MockFirestore()
        users = self.db.collection("users")
        users.document("u1").set(
            {
                "name": "Priya Shah",
                "phone": "7926111222",
                "countryCode": "+44",
                "email": "priya@example.com",
                "initials": "PS",
            }
        )
        users.document("u2").set(
            {"name": "Sam Lee", "phone": "7123456789", "countryCode": "+1"}
        )
        users.document("u3").set({"name": "No Phone"})

    def test_get_user_by_id(self) -> None:
        mock_db = MagicMock()
        mock_doc = MagicMock()
        mock_doc.exists = True
        mock_doc.to_dict.return_value = {"name": "Priya Shah"}
        mock_db.collection().document().get.return_value = mock_doc

        result = UserService.get_user_by_id(mock_db, "u1")
        self.assertIsNotNone(result)
        res = cast(dict[str, Any], result)
        self.assertEqual(res["id"], "u1")
        self.assertEqual(res["name"], "Priya Shah")

    def test_get_user_by_id_not_found(self) -> None:
        self.assertIsNone(UserService.get_user_by_id(self.db, "missing"))

    def test_search_matches_national_format(self) -> None:
        result = UserService.search_user_by_phone_number(self.db, "07926 111222")
        self.assertIsNotNone(result)
        res = cast(dict[str, Any], result)
        self.assertEqual(res["id"], "u1")
        self.assertEqual(res["phone"], "+44 7926111222")
        self.assertEqual(res["initials"], "PS")

    def test_search_matches_us_number_without_country_code(self) -> None:
        result = UserService.search_user_by_phone_number(self.db, "(712) 345-6789")
        self.assertEqual(cast(dict[str, Any], result)["id"], "u2")

    def test_search_requires_enough_digits(self) -> None:
        self.assertIsNone(UserService.search_user_by_phone_number(self.db, "12345"))

    def test_search_no_match(self) -> None:
        self.assertIsNone(
            UserService.search_user_by_phone_number(self.db, "07000000000")
        )

    def test_store_fcm_token_keeps_profile(self) -> None:
        UserService.store_fcm_token(self.db, "u2", "device-token")
        data = self.db.collection("users").document("u2").get().to_dict()
        self.assertEqual(data["fcmToken"], "device-token")
        self.assertEqual(data["name"], "Sam Lee")

    def test_ensure_user_profile_creates_once(self) -> None:
        profile, created = UserService.ensure_user_profile(
            self.db, "u4", email="kai@example.com", name="Kai Moana"
        )
        self.assertTrue(created)
        self.assertEqual(profile["id"], "u4")
        self.assertEqual(profile["initials"], "KM")

        again, created = UserService.ensure_user_profile(self.db, "u4", name="Other")
        self.assertFalse(created)
        self.assertEqual(again["name"], "Kai Moana")
        self.assertEqual(again["email"], "kai@example.com")

    def test_save_user_profile_merges(self) -> None:
        profile = UserService.save_user_profile(
            self.db, "u3", {"name": "Now Phoned", "phone": "7123456780"}
        )

        self.assertEqual(profile["initials"], "NP")
        self.assertEqual(profile["phone"], "7123456780")
        self.assertIn("updatedAt", profile)

    def test_save_user_profile_keeps_given_initials(self) -> None:
        profile = UserService.save_user_profile(
            self.db, "u1", {"name": "Priya Shah-Khan", "initials": "PK"}
        )
        self.assertEqual(profile["initials"], "PK")
        self.assertEqual(profile["countryCode"], "+44")


class TestDeleteAccount(unittest.TestCase):
    def setUp(self) -> None:
        self.db = MockFirestore()
        self.db.collection("users").document("A").set({"name": "Alice Admin"})
        seed_group(self.db, 1, group_doc("A"))
        seed_group(
            self.db,
            2,
            group_doc(
                "B",
                members=[member_doc("B", role="admin"), member_doc("A", "pending")],
            ),
        )

    def test_delete_account(self) -> None:
        group_session = make_session(self.db, "A")

        summary = UserService.delete_account(self.db, group_session)

        self.assertEqual(summary, {"deletedGroups": [1], "leftGroups": [2]})
        self.assertIsNone(DocumentStore(self.db).get("groups", "1"))
        self.assertEqual(
            [m["id"] for m in stored_group(self.db, 2)["members"]], ["B"]
        )
        self.assertIsNone(DocumentStore(self.db).get("users", "A"))

    def test_failure_stops_before_profile_removal(self) -> None:
        membership = MembershipStore(failing_store(TransientNetworkError(), self.db))
        group_session = GroupSession(membership, "A", live=False).open()

        with self.assertRaises(TransientNetworkError):
            UserService.delete_account(self.db, group_session)

        self.assertIsNotNone(DocumentStore(self.db).get("users", "A"))


class TestMemberFromUser(unittest.TestCase):
    def test_builds_pending_member(self) -> None:
        member = member_from_user(
            {
                "id": "u1",
                "name": "priya shah",
                "phone": "7926111222",
                "countryCode": "+44",
            }
        )
        self.assertEqual(member.id, "u1")
        self.assertEqual(member.initials, "PS")
        self.assertEqual(member.phone, "+44 7926111222")
        self.assertEqual(member.status, "pending")
        self.assertEqual(member.role, "member")

    def test_uses_session_uid(self) -> None:
        member = member_from_user({"uid": "u9", "name": "Kai"}, status="accepted")
        self.assertEqual(member.id, "u9")
        self.assertEqual(member.phone, "")
        self.assertEqual(member.status, "accepted")


if __name__ == "__main__":
    unittest.main()
