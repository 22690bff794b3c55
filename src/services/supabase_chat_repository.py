"""Supabase-backed chat repository."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import Any
from uuid import uuid4

from supabase import Client

from src.core.config import get_settings
from src.core.supabase import get_realtime_client, get_supabase_client
from src.models.message import MessageType
from src.models.profile import UserRole
from src.schemas.conversation import ConversationEntity
from src.schemas.group import DEFAULT_GROUP_TYPE, MessageGroupEntity
from src.schemas.message import MessageEntity
from src.schemas.user import AppUser, display_name
from src.services.chat_repository import DEFAULT_PAGE_SIZE, ChatError, ChatRepository

logger = logging.getLogger(__name__)

PROFILE_JOIN = "id, first_name, last_name, avatar_url, role"
MESSAGE_COLUMNS = (
    "id, sender_id, recipient_id, group_id, content, message_type, is_read, created_at, "
    f"sender:profiles!messages_sender_id_fkey({PROFILE_JOIN}), "
    f"recipient:profiles!messages_recipient_id_fkey({PROFILE_JOIN})"
)
GROUP_COLUMNS = "id, school_id, name, type, created_by, created_at"
MEMBER_COLUMNS = (
    "group_id, user_id, "
    "user:profiles!message_group_members_user_id_fkey(id, email, first_name, last_name, role, avatar_url)"
)
RECIPIENT_COLUMNS = "id, email, role, school_id, first_name, last_name, avatar_url, created_at"

STAFF_ROLES = [UserRole.BIGADMIN.value, UserRole.ADMIN.value, UserRole.TEACHER.value]
SCHOOL_ADMIN_ROLES = [UserRole.BIGADMIN.value, UserRole.ADMIN.value]


def _chat_error(operation: str, error: Exception) -> ChatError:
    """Log a backend failure and wrap it as a ChatError."""
    reason = getattr(error, "message", None) or str(error)
    logger.error("Failed to %s: %s", operation, reason)
    return ChatError(f"Failed to {operation}: {reason}")


def _change_record(payload: dict[str, Any]) -> dict[str, Any]:
    """Extract the changed row from a Realtime postgres_changes payload."""
    data = payload.get("data", payload)
    return data.get("record") or data.get("new") or {}


def _sort_by_activity(conversations: list[ConversationEntity]) -> list[ConversationEntity]:
    dated = [c for c in conversations if c.last_activity_time is not None]
    undated = [c for c in conversations if c.last_activity_time is None]
    dated.sort(key=lambda c: c.last_activity_time, reverse=True)
    return dated + undated


class SupabaseChatRepository(ChatRepository):
    """Chat repository for one authenticated user backed by Supabase.

    Queries run through the shared service-role client, so every query is
    explicitly scoped to the user this repository was created for.
    Realtime subscriptions each open their own channel on the messages
    table and close it when the consumer stops iterating.
    """

    def __init__(self, user_id: str | None, client: Client | None = None) -> None:
        """Initialize the repository.

        Args:
            user_id: Authenticated user's profile ID, or None when signed out.
            client: Supabase client. Defaults to the shared client.
        """
        self.user_id = user_id
        self.client = client or get_supabase_client()
        self.settings = get_settings()

    def _require_auth(self) -> str:
        if not self.user_id:
            raise ChatError("User not authenticated")
        return self.user_id

    # Conversations

    async def get_conversations(self) -> list[ConversationEntity]:
        user_id = self._require_auth()
        try:
            conversations = self._direct_conversations(user_id)
            conversations.extend(self._group_conversations(user_id))
        except ChatError:
            raise
        except Exception as e:
            raise _chat_error("fetch conversations", e) from e
        return _sort_by_activity(conversations)

    def _direct_conversations(self, user_id: str) -> list[ConversationEntity]:
        sent = (
            self.client.table("messages")
            .select(MESSAGE_COLUMNS)
            .eq("message_type", MessageType.DIRECT.value)
            .eq("sender_id", user_id)
            .order("created_at", desc=True)
            .execute()
        )
        received = (
            self.client.table("messages")
            .select(MESSAGE_COLUMNS)
            .eq("message_type", MessageType.DIRECT.value)
            .eq("recipient_id", user_id)
            .order("created_at", desc=True)
            .execute()
        )

        rows = {row["id"]: row for row in [*sent.data, *received.data]}
        ordered = sorted(
            rows.values(),
            key=lambda row: MessageEntity.from_row(row).created_at,
            reverse=True,
        )

        threads: dict[str, list[dict[str, Any]]] = {}
        profiles: dict[str, dict[str, Any]] = {}
        for row in ordered:
            recipient_id = row.get("recipient_id")
            if not recipient_id:
                continue
            sender_id = str(row["sender_id"])
            other_id = str(recipient_id) if sender_id == user_id else sender_id
            threads.setdefault(other_id, []).append(row)
            profile = row.get("recipient") if sender_id == user_id else row.get("sender")
            if profile and other_id not in profiles:
                profiles[other_id] = profile

        conversations = []
        for other_id, thread in threads.items():
            profile = profiles.get(other_id) or {}
            unread = sum(
                1
                for row in thread
                if str(row["sender_id"]) != user_id and not row.get("is_read", False)
            )
            name = display_name(
                profile.get("first_name"), profile.get("last_name"), profile.get("role")
            )
            conversations.append(
                ConversationEntity(
                    id=other_id,
                    name=name or "Unknown User",
                    avatar_url=profile.get("avatar_url"),
                    is_group=False,
                    last_message=MessageEntity.from_row(thread[0], user_id),
                    unread_count=unread,
                    participant_ids=[user_id, other_id],
                    participant_role=UserRole.from_string(profile.get("role")),
                )
            )
        return conversations

    def _group_conversations(self, user_id: str) -> list[ConversationEntity]:
        memberships = (
            self.client.table("message_group_members")
            .select("group_id, message_groups!inner(id, name, type, created_at)")
            .eq("user_id", user_id)
            .execute()
        )
        groups = [m["message_groups"] for m in memberships.data if m.get("message_groups")]
        if not groups:
            return []
        group_ids = [str(group["id"]) for group in groups]

        unread_rows = (
            self.client.table("messages")
            .select("id, group_id")
            .in_("group_id", group_ids)
            .neq("sender_id", user_id)
            .eq("is_read", False)
            .execute()
        )
        unread_by_group: dict[str, int] = {}
        for row in unread_rows.data:
            key = str(row["group_id"])
            unread_by_group[key] = unread_by_group.get(key, 0) + 1

        member_rows = (
            self.client.table("message_group_members")
            .select("group_id, user_id")
            .in_("group_id", group_ids)
            .execute()
        )
        members_by_group: dict[str, list[str]] = {}
        for row in member_rows.data:
            members_by_group.setdefault(str(row["group_id"]), []).append(str(row["user_id"]))

        conversations = []
        for group in groups:
            group_id = str(group["id"])
            last = (
                self.client.table("messages")
                .select(MESSAGE_COLUMNS)
                .eq("group_id", group_id)
                .order("created_at", desc=True)
                .limit(1)
                .execute()
            )
            conversations.append(
                ConversationEntity(
                    id=group_id,
                    name=group.get("name") or "",
                    is_group=True,
                    last_message=MessageEntity.from_row(last.data[0], user_id) if last.data else None,
                    unread_count=unread_by_group.get(group_id, 0),
                    participant_ids=members_by_group.get(group_id, []),
                    group_type=group.get("type"),
                    created_at=group.get("created_at"),
                )
            )
        return conversations

    async def subscribe_to_conversations(self) -> AsyncIterator[list[ConversationEntity]]:
        try:
            initial = await self.get_conversations()
        except ChatError as e:
            logger.warning("Initial conversation fetch for stream failed: %s", e)
        else:
            yield initial
        async with aclosing(self._relevant_changes("*")) as changes:
            async for _ in changes:
                try:
                    conversations = await self.get_conversations()
                except ChatError as e:
                    logger.warning("Conversation stream refresh failed: %s", e)
                    continue
                yield conversations

    # Messages

    def _cursor_time(self, before_id: str | None) -> str | None:
        if before_id is None:
            return None
        row = (
            self.client.table("messages")
            .select("created_at")
            .eq("id", before_id)
            .single()
            .execute()
        )
        return row.data["created_at"]

    async def get_direct_messages(
        self,
        other_user_id: str,
        limit: int = DEFAULT_PAGE_SIZE,
        before_id: str | None = None,
    ) -> list[MessageEntity]:
        user_id = self._require_auth()
        try:
            before_time = self._cursor_time(before_id)
            pages = []
            for sender_id, recipient_id in ((user_id, other_user_id), (other_user_id, user_id)):
                query = (
                    self.client.table("messages")
                    .select(MESSAGE_COLUMNS)
                    .eq("message_type", MessageType.DIRECT.value)
                    .eq("sender_id", sender_id)
                    .eq("recipient_id", recipient_id)
                )
                if before_time is not None:
                    query = query.lt("created_at", before_time)
                pages.append(query.order("created_at", desc=True).limit(limit).execute())
        except Exception as e:
            raise _chat_error("fetch messages", e) from e

        merged = {
            row["id"]: MessageEntity.from_row(row, user_id)
            for page in pages
            for row in page.data
        }
        messages = sorted(merged.values(), key=lambda m: m.created_at, reverse=True)
        return messages[:limit]

    async def get_group_messages(
        self,
        group_id: str,
        limit: int = DEFAULT_PAGE_SIZE,
        before_id: str | None = None,
    ) -> list[MessageEntity]:
        user_id = self._require_auth()
        try:
            if not self._is_group_member(group_id, user_id):
                raise ChatError("You are not a member of this group")
            query = self.client.table("messages").select(MESSAGE_COLUMNS).eq("group_id", group_id)
            before_time = self._cursor_time(before_id)
            if before_time is not None:
                query = query.lt("created_at", before_time)
            response = query.order("created_at", desc=True).limit(limit).execute()
        except ChatError:
            raise
        except Exception as e:
            raise _chat_error("fetch group messages", e) from e
        return [MessageEntity.from_row(row, user_id) for row in response.data]

    def _is_group_member(self, group_id: str, user_id: str) -> bool:
        response = (
            self.client.table("message_group_members")
            .select("user_id")
            .eq("group_id", group_id)
            .eq("user_id", user_id)
            .maybe_single()
            .execute()
        )
        return response is not None and bool(response.data)

    def _fetch_message(self, message_id: str, user_id: str) -> MessageEntity:
        response = (
            self.client.table("messages")
            .select(MESSAGE_COLUMNS)
            .eq("id", message_id)
            .single()
            .execute()
        )
        return MessageEntity.from_row(response.data, user_id)

    def _insert_message(self, user_id: str, **fields: Any) -> MessageEntity:
        response = (
            self.client.table("messages")
            .insert({"sender_id": user_id, "is_read": False, **fields})
            .execute()
        )
        return self._fetch_message(str(response.data[0]["id"]), user_id)

    async def send_direct_message(self, recipient_id: str, content: str) -> MessageEntity:
        user_id = self._require_auth()
        try:
            message = self._insert_message(
                user_id,
                recipient_id=recipient_id,
                content=content,
                message_type=MessageType.DIRECT.value,
            )
        except Exception as e:
            raise _chat_error("send message", e) from e
        logger.info("Direct message %s sent by %s", message.id, user_id)
        return message

    async def send_group_message(self, group_id: str, content: str) -> MessageEntity:
        user_id = self._require_auth()
        try:
            if not self._is_group_member(group_id, user_id):
                raise ChatError("You are not a member of this group")
            message = self._insert_message(
                user_id,
                group_id=group_id,
                content=content,
                message_type=MessageType.GROUP.value,
            )
        except ChatError:
            raise
        except Exception as e:
            raise _chat_error("send group message", e) from e
        logger.info("Group message %s sent by %s to %s", message.id, user_id, group_id)
        return message

    async def send_announcement(self, content: str) -> MessageEntity:
        user_id = self._require_auth()
        try:
            message = self._insert_message(
                user_id,
                content=content,
                message_type=MessageType.ANNOUNCEMENT.value,
            )
        except Exception as e:
            raise _chat_error("send announcement", e) from e
        logger.info("Announcement %s sent by %s", message.id, user_id)
        return message

    async def mark_direct_messages_as_read(self, other_user_id: str) -> None:
        user_id = self._require_auth()
        try:
            (
                self.client.table("messages")
                .update({"is_read": True})
                .eq("sender_id", other_user_id)
                .eq("recipient_id", user_id)
                .eq("is_read", False)
                .execute()
            )
        except Exception as e:
            raise _chat_error("mark messages as read", e) from e

    async def mark_group_messages_as_read(self, group_id: str) -> None:
        user_id = self._require_auth()
        try:
            if not self._is_group_member(group_id, user_id):
                logger.warning("Not marking group %s read: %s is not a member", group_id, user_id)
                return
            (
                self.client.table("messages")
                .update({"is_read": True})
                .eq("group_id", group_id)
                .neq("sender_id", user_id)
                .eq("is_read", False)
                .execute()
            )
        except Exception as e:
            logger.warning("Failed to mark group messages as read: %s", e)

    async def subscribe_to_messages(self) -> AsyncIterator[MessageEntity]:
        async with aclosing(self._relevant_changes("INSERT")) as changes:
            async for record in changes:
                try:
                    message = self._fetch_message(str(record["id"]), self._require_auth())
                except Exception as e:
                    logger.warning("Failed to load pushed message %s: %s", record.get("id"), e)
                    continue
                yield message

    # Unread count

    async def get_total_unread_count(self) -> int:
        user_id = self._require_auth()
        try:
            direct = (
                self.client.table("messages")
                .select("id")
                .eq("recipient_id", user_id)
                .eq("is_read", False)
                .execute()
            )
            group_ids = self._member_group_ids(user_id)
            group_count = 0
            if group_ids:
                grouped = (
                    self.client.table("messages")
                    .select("id")
                    .in_("group_id", group_ids)
                    .neq("sender_id", user_id)
                    .eq("is_read", False)
                    .execute()
                )
                group_count = len(grouped.data)
        except Exception as e:
            raise _chat_error("fetch unread count", e) from e
        return len(direct.data) + group_count

    async def subscribe_to_unread_count(self) -> AsyncIterator[int]:
        try:
            initial = await self.get_total_unread_count()
        except ChatError as e:
            logger.warning("Initial unread count fetch for stream failed: %s", e)
        else:
            yield initial
        async with aclosing(self._relevant_changes("*")) as changes:
            async for _ in changes:
                try:
                    count = await self.get_total_unread_count()
                except ChatError as e:
                    logger.warning("Unread count stream refresh failed: %s", e)
                    continue
                yield count

    def _member_group_ids(self, user_id: str) -> list[str]:
        response = (
            self.client.table("message_group_members")
            .select("group_id")
            .eq("user_id", user_id)
            .execute()
        )
        return [str(row["group_id"]) for row in response.data]

    # Recipients

    async def get_available_recipients(self) -> list[AppUser]:
        user_id = self._require_auth()
        try:
            rows = self._recipient_rows(user_id)
        except Exception as e:
            raise _chat_error("fetch recipients", e) from e
        unique = {str(row["id"]): row for row in rows if str(row["id"]) != user_id}
        return AppUser.from_rows(list(unique.values()))

    def _profiles(self) -> Any:
        return self.client.table("profiles").select(RECIPIENT_COLUMNS)

    def _recipient_rows(self, user_id: str) -> list[dict[str, Any]]:
        """Collect the profiles a user may contact, based on their role."""
        me = self._profiles().eq("id", user_id).single().execute().data
        role = UserRole.from_string(me.get("role"))
        school_id = me.get("school_id")

        if role == UserRole.SUPERADMIN:
            return self._profiles().eq("role", UserRole.BIGADMIN.value).execute().data
        if role == UserRole.STUDENT:
            return self._profiles_by_id(self._teacher_ids_for_students([user_id]))
        if not school_id:
            return []

        if role == UserRole.BIGADMIN:
            return self._profiles().eq("school_id", school_id).execute().data
        if role == UserRole.ADMIN:
            return (
                self._profiles()
                .eq("school_id", school_id)
                .in_("role", [*STAFF_ROLES, UserRole.PARENT.value])
                .execute()
                .data
            )
        if role == UserRole.TEACHER:
            staff = (
                self._profiles().eq("school_id", school_id).in_("role", STAFF_ROLES).execute().data
            )
            return staff + self._profiles_by_id(self._parent_ids_for_teacher(user_id))
        if role == UserRole.PARENT:
            admins = (
                self._profiles()
                .eq("school_id", school_id)
                .in_("role", SCHOOL_ADMIN_ROLES)
                .execute()
                .data
            )
            children = (
                self.client.table("parent_student")
                .select("student_id")
                .eq("parent_id", user_id)
                .execute()
            )
            child_ids = [str(row["student_id"]) for row in children.data]
            return admins + self._profiles_by_id(self._teacher_ids_for_students(child_ids))
        return []

    def _profiles_by_id(self, ids: list[str]) -> list[dict[str, Any]]:
        if not ids:
            return []
        return self._profiles().in_("id", ids).execute().data

    def _teacher_ids_for_students(self, student_ids: list[str]) -> list[str]:
        if not student_ids:
            return []
        enrollments = (
            self.client.table("class_students")
            .select("class_id")
            .in_("student_id", student_ids)
            .execute()
        )
        class_ids = sorted({str(row["class_id"]) for row in enrollments.data})
        if not class_ids:
            return []
        subjects = (
            self.client.table("subjects").select("teacher_id").in_("class_id", class_ids).execute()
        )
        return sorted({str(row["teacher_id"]) for row in subjects.data if row.get("teacher_id")})

    def _parent_ids_for_teacher(self, teacher_id: str) -> list[str]:
        subjects = (
            self.client.table("subjects").select("class_id").eq("teacher_id", teacher_id).execute()
        )
        class_ids = sorted({str(row["class_id"]) for row in subjects.data})
        if not class_ids:
            return []
        students = (
            self.client.table("class_students")
            .select("student_id")
            .in_("class_id", class_ids)
            .execute()
        )
        student_ids = sorted({str(row["student_id"]) for row in students.data})
        if not student_ids:
            return []
        parents = (
            self.client.table("parent_student")
            .select("parent_id")
            .in_("student_id", student_ids)
            .execute()
        )
        return sorted({str(row["parent_id"]) for row in parents.data})

    async def search_users(self, query: str) -> list[AppUser]:
        recipients = await self.get_available_recipients()
        needle = query.strip().lower()
        if not needle:
            return recipients
        return [
            user
            for user in recipients
            if needle in user.full_name.lower() or needle in user.email.lower()
        ]

    # Groups

    async def create_group(
        self,
        name: str,
        member_ids: list[str],
        type: str = DEFAULT_GROUP_TYPE,
    ) -> MessageGroupEntity:
        user_id = self._require_auth()
        try:
            me = (
                self.client.table("profiles")
                .select("school_id, role")
                .eq("id", user_id)
                .single()
                .execute()
                .data
            )
            school_id = me.get("school_id")
            if not school_id:
                if UserRole.from_string(me.get("role")) != UserRole.SUPERADMIN:
                    raise ChatError("User has no associated school")
                school_id = self._member_school(member_ids)

            created = (
                self.client.table("message_groups")
                .insert(
                    {"school_id": school_id, "name": name, "type": type, "created_by": user_id}
                )
                .execute()
            )
            group_row = created.data[0]
            group_id = str(group_row["id"])

            self.client.table("message_group_members").insert(
                {"group_id": group_id, "user_id": user_id}
            ).execute()
            for member_id in member_ids:
                if member_id != user_id:
                    self.client.table("message_group_members").insert(
                        {"group_id": group_id, "user_id": member_id}
                    ).execute()
        except ChatError:
            raise
        except Exception as e:
            raise _chat_error("create group", e) from e

        logger.info("Group %s created by %s with %d members", group_id, user_id, len(member_ids))
        group = await self.get_group(group_id)
        return group or MessageGroupEntity.from_row(group_row, members=[])

    def _member_school(self, member_ids: list[str]) -> str | None:
        """School of the first non-superadmin member, for superadmin-created groups."""
        if not member_ids:
            return None
        response = (
            self.client.table("profiles")
            .select("school_id, role")
            .in_("id", member_ids)
            .neq("role", UserRole.SUPERADMIN.value)
            .limit(1)
            .execute()
        )
        return response.data[0].get("school_id") if response.data else None

    async def get_user_groups(self) -> list[MessageGroupEntity]:
        user_id = self._require_auth()
        try:
            group_ids = self._member_group_ids(user_id)
            if not group_ids:
                return []
            groups = (
                self.client.table("message_groups")
                .select(GROUP_COLUMNS)
                .in_("id", group_ids)
                .execute()
            )
            members = (
                self.client.table("message_group_members")
                .select(MEMBER_COLUMNS)
                .in_("group_id", group_ids)
                .execute()
            )
        except Exception as e:
            raise _chat_error("fetch user groups", e) from e

        members_by_group: dict[str, list[dict[str, Any]]] = {}
        for row in members.data:
            members_by_group.setdefault(str(row["group_id"]), []).append(row)
        return [
            MessageGroupEntity.from_row(row, members=members_by_group.get(str(row["id"]), []))
            for row in groups.data
        ]

    async def get_group(self, group_id: str) -> MessageGroupEntity | None:
        self._require_auth()
        try:
            group = (
                self.client.table("message_groups")
                .select(GROUP_COLUMNS)
                .eq("id", group_id)
                .maybe_single()
                .execute()
            )
            if group is None or not group.data:
                return None
            members = (
                self.client.table("message_group_members")
                .select(MEMBER_COLUMNS)
                .eq("group_id", group_id)
                .execute()
            )
        except Exception as e:
            raise _chat_error("fetch group", e) from e
        return MessageGroupEntity.from_row(group.data, members=members.data)

    async def add_group_member(self, group_id: str, user_id: str) -> None:
        self._require_auth()
        try:
            self.client.table("message_group_members").insert(
                {"group_id": group_id, "user_id": user_id}
            ).execute()
        except Exception as e:
            raise _chat_error("add group member", e) from e

    async def remove_group_member(self, group_id: str, user_id: str) -> None:
        self._require_auth()
        try:
            (
                self.client.table("message_group_members")
                .delete()
                .eq("group_id", group_id)
                .eq("user_id", user_id)
                .execute()
            )
        except Exception as e:
            raise _chat_error("remove group member", e) from e

    async def leave_group(self, group_id: str) -> None:
        await self.remove_group_member(group_id, self._require_auth())

    # Realtime

    async def _relevant_changes(self, event: str) -> AsyncIterator[dict[str, Any]]:
        """Yield changed message rows that concern the current user.

        Opens a dedicated Realtime channel for the lifetime of the iteration.

        Args:
            event: Postgres change event to listen for ("INSERT" or "*").
        """
        user_id = self._require_auth()
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        client = await get_realtime_client()
        channel = client.channel(f"messages:{user_id}:{uuid4().hex[:8]}")
        channel.on_postgres_changes(
            event,
            schema=self.settings.realtime_schema,
            table="messages",
            callback=queue.put_nowait,
        )
        await channel.subscribe()
        logger.debug("Realtime channel %s opened", channel.topic)
        try:
            while True:
                record = _change_record(await queue.get())
                if not record.get("id"):
                    continue
                try:
                    relevant = self._is_relevant(record, user_id)
                except Exception as e:
                    logger.warning("Failed to check pushed message %s: %s", record["id"], e)
                    continue
                if relevant:
                    yield record
        finally:
            await client.remove_channel(channel)
            logger.debug("Realtime channel %s closed", channel.topic)

    def _is_relevant(self, record: dict[str, Any], user_id: str) -> bool:
        if record.get("recipient_id") == user_id:
            return True
        group_id = record.get("group_id")
        if group_id:
            return self._is_group_member(str(group_id), user_id)
        return record.get("sender_id") == user_id
