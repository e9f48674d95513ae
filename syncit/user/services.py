"""Service layer for user profiles and lookups."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, cast

from syncit.core.constants import MIN_PHONE_DIGITS, STATUS_PENDING, USERS_COLLECTION
from syncit.group.models import Member
from syncit.utils import make_initials, to_iso, utcnow

if TYPE_CHECKING:
    from google.cloud.firestore_v1.base_document import DocumentSnapshot
    from google.cloud.firestore_v1.client import Client

    from syncit.group.services.session import GroupSession


def normalize_phone_number(phone_number: str) -> set[str]:
    """Return every digit-only form the number could be stored under.

    Covers UK national/international (07… <-> 447…) and NANP with or without
    the leading country code.
    """
    normalized = re.sub(r"\D", "", phone_number or "")
    formats = {normalized}

    # 07926111222 -> 447926111222
    if normalized.startswith("0") and len(normalized) == 11:
        formats.add("44" + normalized[1:])
    # 447926111222 -> 07926111222
    if normalized.startswith("44") and len(normalized) == 12:
        formats.add("0" + normalized[2:])
    # 17123456789 -> 7123456789
    if normalized.startswith("1") and len(normalized) == 11:
        formats.add(normalized[1:])
    # 7123456789 -> 17123456789
    if len(normalized) == 10 and not normalized.startswith("0"):
        formats.add("1" + normalized)

    return formats


def member_from_user(user: dict[str, Any], status: str = STATUS_PENDING) -> Member:
    """Build a group member record from a user profile."""
    name = user.get("name") or ""
    phone = user.get("phone") or ""
    if user.get("countryCode") and phone:
        phone = f"{user['countryCode']} {phone}"
    return Member(
        id=user.get("id") or user.get("uid") or "",
        name=name,
        initials=user.get("initials") or make_initials(name),
        phone=phone,
        status=status,
    )


class UserService:
    """Service class for user-related operations."""

    @staticmethod
    def get_user_by_id(db: Client, user_id: str) -> dict[str, Any] | None:
        """Fetch a user by their ID."""
        user_doc = cast(
            "DocumentSnapshot", db.collection(USERS_COLLECTION).document(user_id).get()
        )
        if not user_doc.exists:
            return None
        data = user_doc.to_dict() or {}
        data["id"] = user_id
        return data

    @staticmethod
    def search_user_by_phone_number(
        db: Client, phone_number: str
    ) -> dict[str, Any] | None:
        """Find the app user whose phone number matches, in any known format."""
        search_formats = normalize_phone_number(phone_number)
        if not any(len(fmt) >= MIN_PHONE_DIGITS for fmt in search_formats):
            return None

        for doc in db.collection(USERS_COLLECTION).stream():
            if not doc.exists:
                continue
            data = doc.to_dict() or {}
            phone = data.get("phone")
            country_code = data.get("countryCode")
            if not phone or not country_code:
                continue

            user_formats = normalize_phone_number(f"{country_code}{phone}")
            if search_formats & user_formats:
                return {
                    "id": doc.id,
                    "name": data.get("name", ""),
                    "phone": f"{country_code} {phone}",
                    "email": data.get("email", ""),
                    "initials": data.get("initials", ""),
                }
        return None

    @staticmethod
    def store_fcm_token(db: Client, user_id: str, token: str) -> None:
        """Save the user's push token so notifications can reach them."""
        db.collection(USERS_COLLECTION).document(user_id).set(
            {"fcmToken": token}, merge=True
        )

    @staticmethod
    def ensure_user_profile(
        db: Client, user_id: str, email: str = "", name: str = ""
    ) -> tuple[dict[str, Any], bool]:
        """Return the user's profile, creating a minimal one on first sign-in.

        The second element tells whether the profile was just created.
        """
        profile = UserService.get_user_by_id(db, user_id)
        if profile is not None:
            return profile, False

        now = to_iso(utcnow())
        profile = {
            "uid": user_id,
            "email": email,
            "name": name,
            "initials": make_initials(name),
            "createdAt": now,
            "updatedAt": now,
        }
        db.collection(USERS_COLLECTION).document(user_id).set(profile)
        return {**profile, "id": user_id}, True

    @staticmethod
    def save_user_profile(
        db: Client, user_id: str, update_data: dict[str, Any]
    ) -> dict[str, Any]:
        """Merge profile fields into the user document and return the result.

        Initials are derived from the name unless given.
        """
        update_data = dict(update_data)
        if update_data.get("name") and not update_data.get("initials"):
            update_data["initials"] = make_initials(update_data["name"])
        update_data["updatedAt"] = to_iso(utcnow())
        db.collection(USERS_COLLECTION).document(user_id).set(update_data, merge=True)
        return UserService.get_user_by_id(db, user_id) or {}

    @staticmethod
    def delete_account(
        db: Client, group_session: GroupSession
    ) -> dict[str, list[int]]:
        """Remove everything the user owns, then the user document.

        Groups the user administers are deleted and every other group is
        left. The first failed write stops the deletion before the profile
        is removed, so a retry can finish it.
        """
        user_id = group_session.user_id
        group_session.refresh_groups().unwrap()

        deleted: list[int] = []
        left: list[int] = []
        for group in group_session.groups:
            result = group_session.delete_group_for_user(group.id)
            if not result.ok:
                raise result.error
            if group.admin == user_id:
                deleted.append(group.id)
            else:
                left.append(group.id)

        db.collection(USERS_COLLECTION).document(user_id).delete()
        return {"deletedGroups": deleted, "leftGroups": left}
